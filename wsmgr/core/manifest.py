"""Manifest 注册表

进程内共享的可变状态: 包定义、OS 依赖定义、包集合列表以及排除/忽略记录。
由单一控制循环原地修改，不需要加锁。

排除 (exclusion) 是单调的: 一次运行中被排除的包不会恢复。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wsmgr.core.exceptions import ConfigError, PackageNotFound
from wsmgr.core.vcs import VCSDefinition, normalize
from wsmgr.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from wsmgr.core.package_set import PackageSet
    from wsmgr.core.workspace import Workspace

logger = logging.getLogger(__name__)

PACKAGE_MANIFEST = "manifest.yml"

OSDEP_AVAILABLE = "available"
OSDEP_IGNORE = "ignore"
OSDEP_NONEXISTENT = "nonexistent"
OSDEP_STATUSES = (OSDEP_AVAILABLE, OSDEP_IGNORE, OSDEP_NONEXISTENT)


@dataclass
class PackageDefinition:
    """源码包"""

    name: str
    package_set: str
    vcs: VCSDefinition
    srcdir: Path
    dependencies: set[str] = field(default_factory=set)
    optional_dependencies: set[str] = field(default_factory=set)
    # 第二遍加载时确定的、实际启用的可选依赖
    enabled_optional_dependencies: set[str] = field(default_factory=set)
    manifest_loaded: bool = False
    prepared: bool = False

    @property
    def has_importer(self) -> bool:
        return self.vcs.needs_import

    @property
    def checked_out(self) -> bool:
        return self.srcdir.is_dir()


@dataclass
class OSDependency:
    """由操作系统包管理器满足的依赖"""

    name: str
    status: str = OSDEP_AVAILABLE
    packages: list[str] = field(default_factory=list)


class Manifest:
    """包、OS 依赖与包集合的注册表"""

    def __init__(self) -> None:
        self.packages: dict[str, PackageDefinition] = {}
        self.osdeps: dict[str, OSDependency] = {}
        self.constants: dict[str, Any] = {}
        self.layout: list[str] = []
        self.manifest_exclusions: list[str] = []
        self.automatic_exclusions: dict[str, str] = {}
        self.ignored_packages: set[str] = set()
        self._package_sets: list[PackageSet] = []

    # ------------------------------------------------------------------
    # 包集合
    # ------------------------------------------------------------------

    @property
    def package_sets(self) -> list[PackageSet]:
        return list(self._package_sets)

    def register_package_set(self, pkg_set: PackageSet) -> None:
        self._package_sets.append(pkg_set)

    def reset_package_sets(self) -> None:
        self._package_sets.clear()

    def find_package_set(self, name: str) -> PackageSet | None:
        for pkg_set in self._package_sets:
            if pkg_set.name == name:
                return pkg_set
        return None

    def apply_main_configuration(self, root: Any) -> None:
        """从主配置（LocalPackageSet）读取 layout / 排除 / 忽略 / 常量"""
        self.layout = list(root.layout)
        self.manifest_exclusions = list(root.exclude_packages)
        self.ignored_packages.update(root.ignore_packages)
        self.constants = dict(root.constants)

    # ------------------------------------------------------------------
    # 包与 OS 依赖
    # ------------------------------------------------------------------

    def register_package(self, pkg: PackageDefinition) -> PackageDefinition:
        previous = self.packages.get(pkg.name)
        if previous is not None and previous.package_set != pkg.package_set:
            logger.info(
                "包 %s 在 %s 中的定义覆盖了 %s 中的定义",
                pkg.name, pkg.package_set, previous.package_set,
            )
        self.packages[pkg.name] = pkg
        return pkg

    def register_osdep(self, osdep: OSDependency) -> OSDependency:
        if osdep.status not in OSDEP_STATUSES:
            raise ConfigError(
                f"OS 依赖 {osdep.name} 的状态 '{osdep.status}' 无效，可用: {', '.join(OSDEP_STATUSES)}"
            )
        self.osdeps[osdep.name] = osdep
        if osdep.status == OSDEP_NONEXISTENT:
            self.exclude_package(osdep.name, f"{osdep.name} is not available on this operating system")
        return osdep

    def find_package(self, name: str) -> PackageDefinition | None:
        return self.packages.get(name)

    def find_package_definition(self, name: str) -> PackageDefinition:
        pkg = self.packages.get(name)
        if pkg is None:
            raise PackageNotFound(name, f"{name} 不是已定义的源码包")
        return pkg

    def is_osdep(self, name: str) -> bool:
        return name in self.osdeps and name not in self.packages

    def validate_dependency(self, name: str, required_by: str) -> None:
        """依赖名必须能解析为源码包或 OS 依赖"""
        if name not in self.packages and name not in self.osdeps:
            raise PackageNotFound(
                name, f"{required_by} 依赖 {name}，但它既不是源码包也不是 OS 依赖",
            )

    # ------------------------------------------------------------------
    # 排除与忽略
    # ------------------------------------------------------------------

    def ignore_package(self, name: str) -> None:
        self.ignored_packages.add(name)

    def is_ignored(self, name: str) -> bool:
        if name in self.ignored_packages:
            return True
        osdep = self.osdeps.get(name)
        return osdep is not None and name not in self.packages and osdep.status == OSDEP_IGNORE

    def explicitly_selected_in_layout(self, name: str) -> bool:
        return name in self.layout

    def excluded_in_manifest(self, name: str) -> bool:
        return any(_matches(matcher, name) for matcher in self.manifest_exclusions)

    def is_excluded(self, name: str) -> bool:
        if name in self.automatic_exclusions:
            return True
        return not self.explicitly_selected_in_layout(name) and self.excluded_in_manifest(name)

    def exclude_package(self, name: str, reason: str) -> None:
        """记录排除原因；已有原因时保留先记录的那个"""
        if name in self.automatic_exclusions:
            return
        self.automatic_exclusions[name] = reason
        logger.debug("排除 %s: %s", name, reason, extra={"package": name})

    add_exclusion = exclude_package

    def exclusion_reason(self, name: str) -> str | None:
        """被排除时返回原因，否则返回 None"""
        reason = self.automatic_exclusions.get(name)
        if reason is not None:
            return reason
        if not self.explicitly_selected_in_layout(name) and self.excluded_in_manifest(name):
            return f"{name} is listed in the exclude_packages section of the manifest"
        return None

    def clear_exclusions(self) -> None:
        self.automatic_exclusions.clear()
        self.manifest_exclusions.clear()

    def reset_packages(self) -> None:
        """清空包、OS 依赖与排除/忽略记录，每次重新加载配置前调用"""
        self.packages.clear()
        self.osdeps.clear()
        self.ignored_packages.clear()
        self.clear_exclusions()

    # ------------------------------------------------------------------
    # 从包集合 / 包清单加载
    # ------------------------------------------------------------------

    def load_package_set_contents(
        self, ws: Workspace, pkg_set: PackageSet, override_sets: Sequence[PackageSet],
    ) -> None:
        """注册包集合 source.yml 中定义的包和 OS 依赖

        override_sets 是定义该包的集合及排在它之后的集合（主配置最后），
        包的 VCS 依次按包名和仓库身份应用其中每个集合的覆盖。
        """
        for name, status in pkg_set.osdep_entries.items():
            if isinstance(status, list):
                self.register_osdep(OSDependency(name, OSDEP_AVAILABLE, [str(s) for s in status]))
            else:
                self.register_osdep(OSDependency(name, str(status or OSDEP_AVAILABLE)))

        for name, entry in pkg_set.package_entries.items():
            entry = entry or {}
            if not isinstance(entry, Mapping):
                raise ConfigError(f"包集合 {pkg_set.name}: 包 {name} 的定义应为映射")
            raw_vcs = entry.get("vcs")
            if raw_vcs is None:
                vcs = VCSDefinition.none()
            else:
                vcs = normalize(raw_vcs, ws.importers, base_dir=pkg_set.raw_local_dir)
            for other in override_sets:
                vcs = other.overrides_for(name, vcs)
                vcs = other.overrides_for(vcs.overrides_key(), vcs)

            if vcs.is_local:
                srcdir = Path(vcs.url)
            else:
                srcdir = ws.root_dir / str(entry.get("path") or name)
            self.register_package(PackageDefinition(
                name=name,
                package_set=pkg_set.name,
                vcs=vcs,
                srcdir=srcdir,
                dependencies=set(_as_list(entry.get("depends"))),
                optional_dependencies=set(_as_list(entry.get("optional_depends"))),
            ))

    def load_package_manifest(self, name: str) -> None:
        """读取包源码目录中的 manifest.yml，追加依赖并记录声明的不支持状态"""
        pkg = self.find_package_definition(name)
        path = pkg.srcdir / PACKAGE_MANIFEST
        data = load_yaml(path)
        pkg.dependencies.update(_as_list(data.get("depends")))
        pkg.optional_dependencies.update(_as_list(data.get("optional_depends")))
        unsupported = data.get("unsupported")
        if unsupported:
            reason = unsupported if isinstance(unsupported, str) else "marked as unsupported"
            self.exclude_package(name, f"{name}: {reason}")
        pkg.manifest_loaded = True


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _matches(matcher: str, name: str) -> bool:
    if matcher == name:
        return True
    try:
        return re.fullmatch(matcher, name) is not None
    except re.error:
        return False
