"""工作空间上下文

单一所有者的可变上下文: 配置、导入器能力表和 Manifest 注册表。
所有核心调用都显式接收它，不使用全局状态，多次解析之间互不影响。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wsmgr.core.config import Config
from wsmgr.core.importers import ImporterTable
from wsmgr.core.manifest import Manifest


@dataclass
class Workspace:
    config: Config = field(default_factory=Config)
    importers: ImporterTable = field(default_factory=ImporterTable)
    manifest: Manifest = field(default_factory=Manifest)

    @property
    def root_dir(self) -> Path:
        return self.config.root_path

    @property
    def config_dir(self) -> Path:
        return self.config.config_path

    @property
    def remotes_dir(self) -> Path:
        return self.config.remotes_path

    @property
    def remotes_user_dir(self) -> Path:
        return self.config.remotes_user_path

    def default_expansions(self) -> dict[str, Any]:
        """所有描述文件都可使用的变量"""
        return {
            "WSMGR_ROOT": str(self.root_dir),
            "WSMGR_CONFIG": str(self.config_dir),
            **self.manifest.constants,
        }
