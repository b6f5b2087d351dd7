"""OS 依赖安装

解析流程只需要 "确保某个 VCS 工具可用" 这一能力:
- 配置了 osdeps_install_cmd 时，用它安装（{packages} 替换为空格分隔的包名）
- 否则只检查对应工具是否在 PATH 中
"""

from __future__ import annotations

import logging
import shlex
import shutil
from typing import Any

from wsmgr.core.importers import BUILTIN_TYPES
from wsmgr.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)

# VCS 类型 / OS 依赖名 → 需要存在的可执行文件
TOOL_COMMANDS: dict[str, str] = {
    "git": "git",
    "svn": "svn",
    "archive": "tar",
}


class ShellInstaller:
    """基于 shell 命令的 OS 依赖安装器"""

    def __init__(
        self,
        install_cmd: str = "",
        executor: CommandExecutor | None = None,
    ) -> None:
        self.install_cmd = install_cmd
        self.executor = executor or LocalExecutor()
        self._installed: set[str] = set()

    def install(self, names: list[str], **options: Any) -> bool:
        pending = [n for n in names if n not in BUILTIN_TYPES and n not in self._installed]
        if not pending:
            return True

        if self.install_cmd:
            args = shlex.split(self.install_cmd.replace("{packages}", " ".join(pending)))
            logger.info("安装 OS 依赖: %s", ", ".join(pending))
            r = self.executor.execute(args)
            if not r.success:
                logger.error("OS 依赖安装失败 (rc=%d): %s", r.returncode, r.stderr[:500])
                return False
            self._installed.update(pending)
            return True

        missing = [n for n in pending if shutil.which(TOOL_COMMANDS.get(n, n)) is None]
        if missing:
            logger.error("缺少工具: %s（请手动安装或配置 osdeps_install_cmd）", ", ".join(missing))
            return False
        self._installed.update(pending)
        return True
