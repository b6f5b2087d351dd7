"""包集合解析

从主配置（根）出发，按 FIFO 队列递归发现、检出/更新并去重所有
被导入的包集合。

规则:
- 去重按仓库身份 (overrides_key)，不按名称；同一仓库只检出一次。
  同一仓库以不同设置被再次请求时，保留第一次的设置并告警。
- 两个不同仓库声明了同一个名称时，保留先解析的那个，后者及其导入
  全部重定向到先解析的集合。
- 根的 overrides 在入队前应用到每一个导入上。
- keep_going 时检出失败被记录下来；若目录仍不存在则放弃该分支。
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wsmgr.core.exceptions import ImportFailure
from wsmgr.core.package_set import PackageSet
from wsmgr.core.protocols import OSPackageInstaller
from wsmgr.core.result import attempt, collect_or_raise
from wsmgr.core.vcs import VCSDefinition
from wsmgr.core.workspace import Workspace
from wsmgr.services.pkgset.remotes import RemotesManager

logger = logging.getLogger(__name__)

QueueEntry = tuple[VCSDefinition, dict[str, Any], PackageSet]


@dataclass
class ResolveResult:
    """解析结果: 包集合与 keep_going 模式下累积的失败"""

    package_sets: list[PackageSet] = field(default_factory=list)
    failures: list[Exception] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.package_sets]


@dataclass
class _Processed:
    vcs: VCSDefinition
    imported_from: PackageSet | None
    pkg_set: PackageSet | None = None


class PackageSetResolver:
    """递归导入包集合"""

    def __init__(
        self,
        ws: Workspace,
        installer: OSPackageInstaller,
        *,
        keep_going: bool | None = None,
        only_local: bool = False,
        update: bool | None = None,
        retry_count: int | None = None,
        remotes: RemotesManager | None = None,
    ) -> None:
        self.ws = ws
        self.installer = installer
        self.keep_going = ws.config.keep_going if keep_going is None else keep_going
        self.only_local = only_local
        self.update = ws.config.do_update if update is None else update
        self.retry_count = ws.config.retry_count if retry_count is None else retry_count
        self.remotes = remotes or RemotesManager(ws.remotes_dir, ws.remotes_user_dir)
        self._update_message_shown = False

    def resolve(self, root: PackageSet) -> ResolveResult:
        """解析 root 的全部传递导入

        返回:
            ResolveResult，package_sets 以 root 开头，其余按发现顺序排列

        异常:
            ConfigError: 描述文件缺失或无效
            ImportFailure: keep_going 为 False 时的第一次检出失败
        """
        result = ResolveResult(package_sets=[root])
        by_repository_id: dict[str, _Processed] = {
            root.repository_id: _Processed(root.vcs, None, root),
        }
        by_name: dict[str, PackageSet] = {root.name: root}

        queue: deque[QueueEntry] = deque()
        self._queue_imports(queue, root, root)

        while queue:
            vcs, options, imported_from = queue.popleft()
            repository_id = vcs.overrides_key() or str(vcs)

            processed = by_repository_id.get(repository_id)
            if processed is not None:
                self._reuse(processed, vcs, imported_from, root)
                continue
            processed = _Processed(vcs, imported_from)
            by_repository_id[repository_id] = processed

            raw_local_dir = PackageSet.raw_local_dir_of(self.ws, vcs)
            if vcs.needs_import:
                outcome = attempt(self._update_remote, vcs, raw_local_dir)
                if not collect_or_raise(outcome, result.failures, self.keep_going):
                    logger.error("包集合 %s 检出失败: %s", vcs, outcome.failure)
                    if not raw_local_dir.is_dir():
                        continue

            name = PackageSet.name_of(vcs, raw_local_dir)
            already_loaded = by_name.get(name)
            if already_loaded is not None:
                if already_loaded.vcs != vcs:
                    logger.warning(
                        "%s 导入了 %s 的包集合，但同名包集合 (%s) 已经从 %s 导入，跳过此包集合",
                        imported_from.name, vcs, name, already_loaded.vcs,
                        extra={"pkg_set": name},
                    )
                processed.pkg_set = already_loaded
                imported_from.add_import(already_loaded)
                continue

            pkg_set = PackageSet(self.ws, vcs, raw_local_dir=raw_local_dir)
            pkg_set.auto_imports = bool(options.get("auto_imports", True))
            pkg_set.load_description_file()
            imported_from.add_import(pkg_set)
            processed.pkg_set = pkg_set
            result.package_sets.append(pkg_set)
            by_name[pkg_set.name] = pkg_set
            if vcs.needs_import:
                self.remotes.create_user_dir(pkg_set)

            self._queue_imports(queue, pkg_set, root)

        visited = [
            PackageSet.raw_local_dir_of(self.ws, p.vcs)
            for p in by_repository_id.values() if p.vcs.needs_import
        ]
        self.remotes.cleanup_remotes_dir(visited)
        self.remotes.cleanup_user_dir(result.package_sets)
        logger.info("已解析 %d 个包集合", len(result.package_sets) - 1)
        return result

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    @staticmethod
    def _reuse(
        processed: _Processed,
        vcs: VCSDefinition,
        imported_from: PackageSet,
        root: PackageSet,
    ) -> None:
        """已处理过的仓库: 只补充导入关系"""
        if processed.imported_from is not None and processed.imported_from is not root \
                and processed.vcs != vcs:
            logger.warning(
                "已经从 %s 加载了包集合 %s (由 %s 导入)，忽略 %s 中的不同设置 (%s)",
                processed.vcs, processed.vcs.overrides_key(), processed.imported_from.name,
                imported_from.name, vcs,
            )
        # 检出失败而被放弃的分支没有对应的包集合
        if processed.pkg_set is not None:
            imported_from.add_import(processed.pkg_set)

    @staticmethod
    def _queue_imports(queue: deque[QueueEntry], pkg_set: PackageSet, root: PackageSet) -> None:
        if not pkg_set.auto_imports:
            return
        for vcs, options in pkg_set.each_raw_imported_set():
            vcs = root.overrides_for(vcs.overrides_key(), vcs)
            queue.append((vcs, options, pkg_set))

    def _update_remote(self, vcs: VCSDefinition, raw_local_dir: Path) -> bool:
        if not self.update and raw_local_dir.is_dir():
            return False
        if not self._update_message_shown:
            logger.info("更新包集合的远程定义")
            self._update_message_shown = True
        if not self.installer.install([vcs.type]):
            raise ImportFailure(str(vcs), f"无法安装 {vcs.type} 所需的工具")
        importer = self.ws.importers.get(vcs.type)
        return importer.checkout(
            vcs, raw_local_dir,
            update=self.update,
            only_local=self.only_local,
            retry_count=self.retry_count,
        )
