"""工作空间编排服务

面向 CLI 的入口，串起:
  主配置 → 包集合解析 → 排序 → 注册到 Manifest → 加载包定义 → 导入源码包
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from wsmgr.core.exceptions import PackageNotFound
from wsmgr.core.package_set import LocalPackageSet, PackageSet
from wsmgr.core.protocols import OSPackageInstaller
from wsmgr.core.selection import PackageSelection
from wsmgr.core.workspace import Workspace
from wsmgr.services.importer.walker import ImportResult, PackageImportWalker
from wsmgr.services.pkgset.remotes import RemotesManager
from wsmgr.services.pkgset.resolver import PackageSetResolver, ResolveResult
from wsmgr.services.pkgset.sequencer import sequence
from wsmgr.utils.yaml_io import save_yaml

logger = logging.getLogger(__name__)


class WorkspaceService:
    """配置加载与源码导入"""

    def __init__(
        self,
        ws: Workspace,
        installer: OSPackageInstaller,
        remotes: RemotesManager | None = None,
    ) -> None:
        self.ws = ws
        self.installer = installer
        self.remotes = remotes or RemotesManager(ws.remotes_dir, ws.remotes_user_dir)
        self.root: LocalPackageSet | None = None

    # ---- 配置 ----

    def load_main_configuration(self) -> LocalPackageSet:
        root = LocalPackageSet(self.ws)
        root.load_description_file()
        root.explicit = True
        return root

    def update_configuration(
        self,
        *,
        only_local: bool = False,
        keep_going: bool | None = None,
    ) -> ResolveResult:
        """解析并注册所有包集合及其包定义

        返回的 ResolveResult.package_sets 已排序（根在最后）。
        """
        manifest = self.ws.manifest
        manifest.reset_packages()
        root = self.load_main_configuration()
        manifest.apply_main_configuration(root)

        resolver = PackageSetResolver(
            self.ws, self.installer,
            keep_going=keep_going, only_local=only_local, remotes=self.remotes,
        )
        resolved = resolver.resolve(root)
        for pkg_set in root.imports:
            pkg_set.explicit = True
        ordered = sequence(resolved.package_sets, root)

        manifest.reset_package_sets()
        for pkg_set in ordered:
            manifest.register_package_set(pkg_set)
        for index, pkg_set in enumerate(ordered):
            manifest.load_package_set_contents(self.ws, pkg_set, ordered[index:])

        self.root = root
        for failure in resolved.failures:
            logger.error("包集合更新失败: %s", failure)
        logger.info(
            "配置已更新: %d 个包集合, %d 个包, %d 个 OS 依赖",
            len(ordered), len(manifest.packages), len(manifest.osdeps),
        )
        return ResolveResult(package_sets=ordered, failures=resolved.failures)

    # ---- 选择与导入 ----

    def resolve_selection(self, names: Iterable[str] = ()) -> PackageSelection:
        """把用户给出的名称展开为包选择；为空时使用 layout

        名称可以是包、包集合、OS 依赖或匹配包名的正则。
        """
        manifest = self.ws.manifest
        names = list(names) or list(manifest.layout)
        if not names:
            names = sorted(manifest.packages)

        selection = PackageSelection()
        for name in names:
            if name in manifest.packages:
                selection.select(name, name)
                continue
            pkg_set = manifest.find_package_set(name)
            if pkg_set is not None:
                members = [p.name for p in manifest.packages.values() if p.package_set == pkg_set.name]
                selection.select(name, members, weak=True)
                continue
            if name in manifest.osdeps:
                selection.select(name, name, osdep=True)
                continue
            matches = self._match_packages(name)
            if not matches:
                raise PackageNotFound(name, f"{name} 既不是包、包集合、OS 依赖，也不匹配任何包名")
            selection.select(name, matches, weak=True)
        return selection

    def _match_packages(self, pattern: str) -> list[str]:
        try:
            regex = re.compile(pattern)
        except re.error:
            return []
        return sorted(n for n in self.ws.manifest.packages if regex.search(n))

    def import_packages(self, names: Iterable[str] = (), **options: Any) -> ImportResult:
        """导入选中的包；options 透传给 PackageImportWalker"""
        selection = self.resolve_selection(names)
        selection.filter_excluded_and_ignored_packages(self.ws.manifest)
        walker = PackageImportWalker(self.ws, self.installer, **options)
        return walker.import_packages(selection)

    # ---- 快照 ----

    def snapshot_package_sets(self, target_dir: Path, output_file: Path) -> dict[str, Any]:
        """把每个远程包集合固定到当前版本，写成 overrides 文件"""
        overrides: list[dict[str, Any]] = []
        for pkg_set in self.ws.manifest.package_sets:
            if pkg_set.main or pkg_set.is_local:
                continue
            info = pkg_set.snapshot(target_dir)
            if info is None:
                logger.warning(
                    "包集合 %s (%s) 不支持固定版本，已跳过", pkg_set.name, pkg_set.vcs,
                    extra={"pkg_set": pkg_set.name},
                )
                continue
            overrides.append({pkg_set.repository_id: info})
        data: dict[str, Any] = {"overrides": overrides}
        save_yaml(output_file, data)
        logger.info("包集合快照已写入: %s (%d 项)", output_file, len(overrides))
        return data

    def package_sets(self) -> list[PackageSet]:
        return self.ws.manifest.package_sets
