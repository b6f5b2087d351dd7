"""外部协作方的接口契约（Protocol）

核心算法只依赖这些抽象: 具体的 git/svn/tar 导入器、OS 包管理器
都在 services 层实现，测试中可直接注入内存 fake。
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from wsmgr.core.vcs import VCSDefinition


class VCSImporter(Protocol):
    """按 VCS 类型注册的导入能力

    checkout 失败时抛 ImportFailure；重试次数由调用方透传，
    重试循环由实现自行负责。
    """

    # 需要用户交互（例如输入密码）的导入器只能在协调线程上执行
    interactive: bool

    def checkout(
        self,
        vcs: VCSDefinition,
        target_dir: Path,
        *,
        update: bool = True,
        only_local: bool = False,
        retry_count: int = 0,
    ) -> bool:
        """检出或更新到 target_dir，有变化时返回 True"""
        ...

    def is_present(self, target_dir: Path) -> bool:
        """target_dir 是否已经是该类型的检出目录"""
        ...

    def snapshot(
        self, vcs: VCSDefinition, source_dir: Path, target_dir: Path,
    ) -> dict[str, Any] | None:
        """返回可复现的固定版本描述；不支持固定版本时返回 None"""
        ...


class OSPackageInstaller(Protocol):
    """OS 包安装能力（apt/yum/brew 等由实现决定）"""

    def install(self, names: list[str], **options: Any) -> bool:
        """安装一组 OS 依赖，成功返回 True"""
        ...
