"""VCS 导入器能力表

类型名 → 导入器 的可注册映射，外加 "source handler" 快捷写法
(例如 ``github: user/repo`` 展开为完整的 git 定义)。
核心代码只通过这张表按类型查找导入器，从不自行分支判断类型字符串。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from wsmgr.core.exceptions import ConfigError

if TYPE_CHECKING:
    from wsmgr.core.protocols import VCSImporter

logger = logging.getLogger(__name__)

# 内置类型: 不需要导入器
NONE_TYPE = "none"
LOCAL_TYPE = "local"
BUILTIN_TYPES = (NONE_TYPE, LOCAL_TYPE)

SourceHandler = Callable[[str, dict[str, Any]], dict[str, Any]]


class ImporterTable:
    """导入器注册表"""

    def __init__(self) -> None:
        self._importers: dict[str, VCSImporter] = {}
        self._source_handlers: dict[str, SourceHandler] = {}

    # ---- 导入器 ----

    def register(self, vcs_type: str, importer: VCSImporter) -> None:
        if vcs_type in BUILTIN_TYPES:
            raise ValueError(f"'{vcs_type}' 是内置类型，不能注册导入器")
        self._importers[vcs_type] = importer
        logger.debug("已注册导入器: %s -> %s", vcs_type, type(importer).__name__)

    def is_known(self, vcs_type: str) -> bool:
        return vcs_type in BUILTIN_TYPES or vcs_type in self._importers

    def get(self, vcs_type: str) -> VCSImporter:
        importer = self._importers.get(vcs_type)
        if importer is None:
            raise ConfigError(
                f"未知的版本控制类型 '{vcs_type}'，可用: {sorted(self._importers)}"
            )
        return importer

    def types(self) -> list[str]:
        return list(self._importers)

    # ---- source handler ----

    def add_source_handler(self, name: str, handler: SourceHandler) -> None:
        self._source_handlers[name] = handler

    def has_source_handler(self, name: str) -> bool:
        return name in self._source_handlers

    def call_source_handler(
        self, name: str, url: str, options: dict[str, Any],
    ) -> dict[str, Any]:
        handler = self._source_handlers.get(name)
        if handler is None:
            raise ConfigError(f"没有名为 {name} 的 source handler")
        return handler(url, options)


def git_server_handler(base_url: str) -> SourceHandler:
    """生成 "<server>: owner/repo" 形式的快捷写法处理器"""

    def handler(path: str, options: dict[str, Any]) -> dict[str, Any]:
        repo = path.strip("/").removesuffix(".git")
        return {"type": "git", "url": f"{base_url.rstrip('/')}/{repo}.git", **options}

    return handler
