"""服务容器 — 统一依赖注入

同一容器内的实例共享状态: 一个 Workspace（Manifest 注册表）、一张导入器
能力表和一个 OS 依赖安装器。CLI 通过 get_container() 获取服务。

依赖关系图（→ 表示依赖）:
  workspace         → importers
  workspace_service → workspace, installer

用法:
    container = ServiceContainer()
    svc = container.workspace_service    # 懒加载

    # 显式注入配置 / 执行器（测试中注入 fake）
    cfg = Config.from_file("wsconfig/config.yml")
    container = ServiceContainer(config=cfg, executor=FakeExecutor())
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wsmgr.core.config import Config
    from wsmgr.core.importers import ImporterTable
    from wsmgr.core.protocols import OSPackageInstaller
    from wsmgr.core.workspace import Workspace
    from wsmgr.services.workspace_service import WorkspaceService
    from wsmgr.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from wsmgr.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor

    @property
    def config(self) -> Config:
        return self._config

    # ---- 外部协作方 ----

    @property
    def importers(self) -> ImporterTable:
        if "importers" not in self._instances:
            from wsmgr.services.vcs.sources import default_importer_table
            self._instances["importers"] = default_importer_table(self._executor)
        return self._instances["importers"]  # type: ignore[return-value]

    @property
    def installer(self) -> OSPackageInstaller:
        if "installer" not in self._instances:
            from wsmgr.services.osdeps import ShellInstaller
            self._instances["installer"] = ShellInstaller(
                install_cmd=self._config.osdeps_install_cmd,
                executor=self._executor,
            )
        return self._instances["installer"]  # type: ignore[return-value]

    # ---- 工作空间 ----

    @property
    def workspace(self) -> Workspace:
        if "workspace" not in self._instances:
            from wsmgr.core.workspace import Workspace
            self._instances["workspace"] = Workspace(
                config=self._config,
                importers=self.importers,
            )
        return self._instances["workspace"]  # type: ignore[return-value]

    @property
    def workspace_service(self) -> WorkspaceService:
        if "workspace_service" not in self._instances:
            from wsmgr.services.workspace_service import WorkspaceService
            self._instances["workspace_service"] = WorkspaceService(
                ws=self.workspace,
                installer=self.installer,
            )
        return self._instances["workspace_service"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（配置切换或测试时使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
