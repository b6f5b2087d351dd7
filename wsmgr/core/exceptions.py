"""统一异常体系

所有业务异常继承 WsmgrError。CLI 层据此输出友好提示。

注意: 中断 (KeyboardInterrupt) 不属于本体系，任何 keep_going
路径都不会捕获它。
"""

from __future__ import annotations

from typing import Any


class WsmgrError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(WsmgrError):
    """配置本身无效（VCS 描述无法解析、描述文件缺失、包集合循环导入等）

    检测到即致命，不会自动重试。
    """

    code = "CONFIG_ERROR"

    def __init__(self, message: str, file: str | None = None) -> None:
        super().__init__(message)
        self.file = file


class PackageNotFound(ConfigError):
    """依赖名既不是已定义的源码包，也不是 OS 依赖"""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or f"未知的包或 OS 依赖: {name}")
        self.name = name


class ExcludedSelection(ConfigError):
    """用户显式选择的包被排除出构建"""

    code = "EXCLUDED_SELECTION"

    def __init__(self, selection: str, message: str) -> None:
        super().__init__(message)
        self.selection = selection


class ImportFailure(WsmgrError):
    """一次 checkout / update / import 调用失败（网络、权限、磁盘）

    是否中止整个流程由 keep_going 决定。
    """

    code = "IMPORT_FAILURE"

    def __init__(self, target: str, message: str) -> None:
        super().__init__(f"{target}: {message}")
        self.target = target


class PackageImportFailed(WsmgrError):
    """keep_going 模式下累积的导入失败汇总，同时携带已成功的部分结果"""

    code = "PACKAGE_IMPORT_FAILED"

    def __init__(
        self,
        failures: list[Exception],
        source_packages: Any = None,
        osdep_packages: Any = None,
    ) -> None:
        lines = [f"{len(failures)} 个包导入失败:"]
        lines.extend(f"  {f}" for f in failures)
        super().__init__("\n".join(lines))
        self.failures = failures
        self.source_packages = source_packages
        self.osdep_packages = osdep_packages


class InternalError(WsmgrError):
    """内部一致性检查失败，说明存在 bug"""

    code = "INTERNAL_ERROR"


class ExecutionError(WsmgrError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"
