"""源码包导入图遍历

从选中的包出发，沿依赖关系（强依赖 + 可选依赖）按波次 (wave) 处理 FIFO 队列:

1. 预检查: 计算下一步依赖，已排除的依赖沿反向依赖传播排除；
   没有 VCS 且源码目录不存在的包直接报 ConfigError
2. 同一波次内，非交互式导入器在线程池中并行执行，交互式导入器在
   协调线程上执行；结果按波次顺序折回共享注册表
3. 导入后读取包清单，可能引入新的排除，随后按名称排序入队新依赖

队列耗尽后执行第二遍不动点处理（不再触发导入）: 连接启用的可选依赖，
标记可构建的包。
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from wsmgr.core.exceptions import ConfigError, ImportFailure, PackageImportFailed
from wsmgr.core.importers import BUILTIN_TYPES
from wsmgr.core.manifest import PackageDefinition
from wsmgr.core.protocols import OSPackageInstaller, VCSImporter
from wsmgr.core.result import Outcome, attempt, collect_or_raise
from wsmgr.core.selection import PackageSelection
from wsmgr.core.workspace import Workspace
from wsmgr.services.importer.exclusion import mark_exclusion_along_revdeps

logger = logging.getLogger(__name__)

NON_IMPORTED_POLICIES = ("checkout", "ignore", "return")

WaveItem = tuple[PackageDefinition, "VCSImporter | None"]


@dataclass
class ImportResult:
    """导入结果: 启用的源码包与 OS 依赖（均已排序）"""

    source_packages: list[str] = field(default_factory=list)
    osdep_packages: list[str] = field(default_factory=list)
    # 第二遍处理访问到的全部包（含被排除/忽略的）
    all_packages: set[str] = field(default_factory=set)


class PackageImportWalker:
    """按依赖关系导入选中的源码包"""

    def __init__(
        self,
        ws: Workspace,
        installer: OSPackageInstaller | None = None,
        *,
        parallel: int | None = None,
        recursive: bool = True,
        retry_count: int | None = None,
        keep_going: bool | None = None,
        auto_exclude: bool | None = None,
        non_imported_packages: str = "checkout",
        checkout_only: bool = False,
        update: bool | None = None,
        only_local: bool = False,
    ) -> None:
        if non_imported_packages not in NON_IMPORTED_POLICIES:
            raise ValueError(
                f"non_imported_packages 无效: {non_imported_packages!r}，可用: {', '.join(NON_IMPORTED_POLICIES)}"
            )
        cfg = ws.config
        self.ws = ws
        self.manifest = ws.manifest
        self.installer = installer
        self.parallel = max(1, cfg.parallel_import_level if parallel is None else parallel)
        self.recursive = recursive
        self.retry_count = cfg.retry_count if retry_count is None else retry_count
        self.keep_going = cfg.keep_going if keep_going is None else keep_going
        self.auto_exclude = cfg.auto_exclude if auto_exclude is None else auto_exclude
        self.non_imported_packages = non_imported_packages
        self.checkout_only = checkout_only
        self.update = cfg.do_update if update is None else update
        self.only_local = only_local

        self.reverse_dependencies: dict[str, set[str]] = defaultdict(set)

    # ==================================================================
    # 入口
    # ==================================================================

    def import_packages(
        self,
        selection: PackageSelection,
        *,
        warn_about_excluded: bool = True,
        warn_about_ignored: bool = True,
    ) -> ImportResult:
        """导入 selection 中的包及其依赖

        异常:
            ConfigError: 依赖无法解析、包无法获取源码
            ExcludedSelection: 用户直接选中的包被排除
            ImportFailure: keep_going 为 False 时的第一次导入失败
            PackageImportFailed: keep_going 模式下存在失败，携带部分结果
        """
        processed, failures = self.import_selected_packages(selection)
        all_packages = self.finalize_package_load(selection, processed)

        enabled = sorted(n for n in processed if self._enabled(n))
        osdeps = set(selection.each_osdep_package_name())
        if self.recursive:
            for name in enabled:
                pkg = self.manifest.find_package_definition(name)
                osdeps.update(d for d in pkg.dependencies if self.manifest.is_osdep(d))
        osdeps = {d for d in osdeps if self._enabled(d)}
        result = ImportResult(enabled, sorted(osdeps), all_packages)

        if warn_about_excluded:
            for sel, names in sorted(selection.exclusions.items()):
                for name in sorted(names):
                    logger.warning(
                        "%s, which was selected for %s, cannot be built: %s",
                        name, sel, self.manifest.exclusion_reason(name),
                        extra={"package": name, "selection": sel},
                    )
        if warn_about_ignored:
            for sel, names in sorted(selection.ignores.items()):
                for name in sorted(names):
                    logger.warning(
                        "%s, which was selected for %s, is ignored", name, sel,
                        extra={"package": name, "selection": sel},
                    )

        if failures:
            raise PackageImportFailed(
                failures, source_packages=result.source_packages,
                osdep_packages=result.osdep_packages,
            )
        return result

    # ==================================================================
    # 第一遍: 队列驱动的导入
    # ==================================================================

    def import_selected_packages(
        self, selection: PackageSelection,
    ) -> tuple[list[str], list[Exception]]:
        """返回 (按处理顺序排列的包名, keep_going 模式下累积的失败)"""
        manifest = self.manifest
        queue: deque[str] = deque(sorted(selection.each_source_package_name()))
        processed: list[str] = []
        seen: set[str] = set()
        failures: list[Exception] = []
        installed_vcs: set[str] = set(BUILTIN_TYPES)

        while queue and (not failures or self.keep_going):
            wave: list[WaveItem] = []
            while queue:
                name = queue.popleft()
                if name in seen:
                    continue
                seen.add(name)
                pkg = manifest.find_package_definition(name)
                processed.append(name)

                if self.non_imported_packages != "checkout" and not pkg.checked_out:
                    if self.non_imported_packages == "ignore":
                        manifest.ignore_package(name)
                        continue
                    wave.append((pkg, None))
                    continue

                if not self._pre_package_import(selection, pkg):
                    continue
                importer = self.ws.importers.get(pkg.vcs.type) if pkg.has_importer else None
                wave.append((pkg, importer))

            outcomes = self._run_wave(wave, installed_vcs)
            for (pkg, _importer), outcome in zip(wave, outcomes):
                if outcome.failure is not None:
                    if self.auto_exclude:
                        manifest.add_exclusion(
                            pkg.name,
                            f"{pkg.name} failed to import with {outcome.failure} and auto_exclude was true",
                        )
                        mark_exclusion_along_revdeps(manifest, pkg.name, self.reverse_dependencies)
                        selection.filter_excluded_and_ignored_packages(manifest)
                        continue
                    logger.error("导入 %s 失败: %s", pkg.name, outcome.failure, extra={"package": pkg.name})
                    collect_or_raise(outcome, failures, self.keep_going)
                    continue

                new_packages = self._post_package_import(selection, pkg)
                if new_packages is None:
                    continue
                if manifest.is_excluded(pkg.name):
                    selection.filter_excluded_and_ignored_packages(manifest)
                elif self.recursive:
                    queue.extend(sorted(new_packages))

        return processed, failures

    # ------------------------------------------------------------------
    # 单个包的前后处理
    # ------------------------------------------------------------------

    def _import_next_step(self, pkg: PackageDefinition) -> list[str]:
        """登记反向依赖，返回需要继续处理的源码包（已去掉被排除/忽略的）"""
        manifest = self.manifest
        candidates: list[str] = []
        for dep in sorted(pkg.dependencies):
            manifest.validate_dependency(dep, pkg.name)
            self.reverse_dependencies[dep].add(pkg.name)
            if not manifest.is_osdep(dep):
                candidates.append(dep)
        for dep in sorted(pkg.optional_dependencies):
            if manifest.find_package(dep) is not None and dep not in candidates:
                candidates.append(dep)

        for dep in sorted(pkg.dependencies | pkg.optional_dependencies):
            if manifest.is_osdep(dep) and manifest.is_excluded(dep):
                mark_exclusion_along_revdeps(manifest, dep, self.reverse_dependencies)

        next_packages: list[str] = []
        for dep in candidates:
            if manifest.is_excluded(dep):
                mark_exclusion_along_revdeps(manifest, dep, self.reverse_dependencies)
            elif not manifest.is_ignored(dep):
                next_packages.append(dep)
        return next_packages

    def _pre_package_import(self, selection: PackageSelection, pkg: PackageDefinition) -> bool:
        """返回 False 表示跳过该包的导入"""
        self._import_next_step(pkg)
        if self.manifest.is_excluded(pkg.name):
            selection.filter_excluded_and_ignored_packages(self.manifest)
            return False
        if self.manifest.is_ignored(pkg.name):
            return False
        if not pkg.has_importer and not pkg.checked_out:
            raise ConfigError(f"{pkg.name} 没有配置 VCS，且源码目录 {pkg.srcdir} 不存在")
        return True

    def _post_package_import(
        self, selection: PackageSelection, pkg: PackageDefinition,
    ) -> list[str] | None:
        """读取包清单并返回新发现的依赖；包被排除或忽略时返回 None"""
        manifest = self.manifest
        if pkg.checked_out:
            try:
                manifest.load_package_manifest(pkg.name)
            except ConfigError as e:
                if not self.auto_exclude:
                    raise
                manifest.add_exclusion(
                    pkg.name, f"{pkg.name} failed to import with {e} and auto_exclude was true",
                )

        if manifest.is_excluded(pkg.name):
            mark_exclusion_along_revdeps(manifest, pkg.name, self.reverse_dependencies)
            selection.filter_excluded_and_ignored_packages(manifest)
            return None
        if manifest.is_ignored(pkg.name):
            return None
        return self._import_next_step(pkg)

    # ------------------------------------------------------------------
    # 执行导入
    # ------------------------------------------------------------------

    def _run_wave(self, wave: list[WaveItem], installed_vcs: set[str]) -> list[Outcome[bool]]:
        """执行一个波次的导入，按 wave 顺序返回结果"""
        failed_vcs = self._install_vcs_packages(
            [pkg for pkg, importer in wave if importer is not None], installed_vcs,
        )

        outcomes: list[Outcome[bool] | None] = [None] * len(wave)
        pooled: list[int] = []
        main_thread: list[int] = []
        for i, (pkg, importer) in enumerate(wave):
            if importer is None or (self.checkout_only and pkg.checked_out):
                outcomes[i] = Outcome(value=False)
            elif pkg.vcs.type in failed_vcs:
                outcomes[i] = Outcome(failure=ImportFailure(pkg.name, f"无法安装 {pkg.vcs.type} 所需的工具"))
            elif importer.interactive or self.parallel <= 1:
                main_thread.append(i)
            else:
                pooled.append(i)

        if pooled:
            with ThreadPoolExecutor(max_workers=self.parallel) as pool:
                futures: dict[int, Future[Outcome[bool]]] = {
                    i: pool.submit(attempt, self._import_one, *wave[i]) for i in pooled
                }
                for i, future in futures.items():
                    outcomes[i] = future.result()

        for i in main_thread:
            outcomes[i] = attempt(self._import_one, *wave[i])

        return [o if o is not None else Outcome(value=False) for o in outcomes]

    def _import_one(self, pkg: PackageDefinition, importer: VCSImporter) -> bool:
        logger.info("导入 %s (%s)", pkg.name, pkg.vcs, extra={"package": pkg.name})
        return importer.checkout(
            pkg.vcs, pkg.srcdir,
            update=self.update,
            only_local=self.only_local,
            retry_count=self.retry_count,
        )

    def _install_vcs_packages(
        self, packages: Iterable[PackageDefinition], installed_vcs: set[str],
    ) -> set[str]:
        """为包所需的 VCS 类型各调用一次安装器，返回安装失败的类型"""
        missing = sorted({pkg.vcs.type for pkg in packages} - installed_vcs)
        if not missing or self.installer is None:
            installed_vcs.update(missing)
            return set()
        if self.installer.install(missing):
            installed_vcs.update(missing)
            return set()
        logger.error("VCS 工具安装失败: %s", ", ".join(missing))
        return set(missing)

    # ==================================================================
    # 第二遍: 不动点
    # ==================================================================

    def finalize_package_load(
        self, selection: PackageSelection, processed: Iterable[str],
    ) -> set[str]:
        """连接启用的可选依赖并标记可构建的包，不再触发导入"""
        manifest = self.manifest
        processed = set(processed)
        visited: set[str] = set()
        queue: deque[str] = deque([*selection.each_source_package_name(), *sorted(processed)])
        while queue:
            name = queue.popleft()
            if name in visited:
                continue
            visited.add(name)
            if manifest.is_ignored(name) or manifest.is_excluded(name):
                continue

            pkg = manifest.find_package_definition(name)
            if name not in processed and pkg.checked_out and not pkg.manifest_loaded:
                try:
                    manifest.load_package_manifest(name)
                except ConfigError as e:
                    if not self.auto_exclude:
                        raise
                    manifest.exclude_package(
                        name, f"{name} had an error when being loaded ({e}) and auto_exclude is true",
                    )
                    continue

            for dep in sorted(pkg.optional_dependencies):
                known = manifest.find_package(dep) is not None or dep in manifest.osdeps
                if known and not manifest.is_ignored(dep) and not manifest.is_excluded(dep):
                    pkg.enabled_optional_dependencies.add(dep)
            if pkg.checked_out:
                pkg.prepared = True

            queue.extend(
                d for d in sorted(pkg.dependencies | pkg.enabled_optional_dependencies)
                if not manifest.is_osdep(d)
            )
        return visited

    def _enabled(self, name: str) -> bool:
        return not self.manifest.is_excluded(name) and not self.manifest.is_ignored(name)
