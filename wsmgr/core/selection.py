"""包选择

记录用户的每个选择字符串（命令行参数、layout 条目）选中了哪些包，
用于区分 "用户确实需要的包不可用"（错误）和 "顺带选中的包不可用"（警告），
并在最后按原始选择分组报告被排除/忽略的包。
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

from wsmgr.core.exceptions import ExcludedSelection

if TYPE_CHECKING:
    from wsmgr.core.manifest import Manifest


class PackageSelection:
    def __init__(self) -> None:
        # 选择字符串 → 选中的包
        self.matches: dict[str, set[str]] = defaultdict(set)
        # 包名 → 选中它的选择字符串
        self.selection: dict[str, set[str]] = defaultdict(set)
        self.weak_dependencies: dict[str, bool] = {}
        self.exclusions: dict[str, set[str]] = defaultdict(set)
        self.ignores: dict[str, set[str]] = defaultdict(set)
        self.source_packages: set[str] = set()
        self.osdeps: set[str] = set()

    def __contains__(self, pkg_name: str) -> bool:
        return pkg_name in self.selection

    def select(
        self,
        sel: str,
        packages: str | Iterable[str],
        *,
        weak: bool = False,
        osdep: bool = False,
    ) -> None:
        names = {packages} if isinstance(packages, str) else set(packages)
        self.matches[sel].update(names)
        for name in names:
            self.selection[name].add(sel)
        if osdep:
            self.osdeps.update(names)
        else:
            self.source_packages.update(names)
        self.weak_dependencies[sel] = weak

    def each_source_package_name(self) -> list[str]:
        return sorted(self.source_packages)

    def each_osdep_package_name(self) -> list[str]:
        return sorted(self.osdeps)

    def filter_excluded_and_ignored_packages(self, manifest: Manifest) -> None:
        """移除已排除/忽略的包

        非 weak 的选择中出现被排除的包时抛 ExcludedSelection；
        否则把它们记录到 exclusions / ignores 以便最后告警。
        """
        for sel in sorted(self.matches):
            expansion = self.matches[sel]
            excluded = sorted(n for n in expansion if manifest.is_excluded(n))
            ignored = sorted(n for n in expansion if n not in excluded and manifest.is_ignored(n))
            ok = [n for n in expansion if n not in excluded and n not in ignored]
            weak = self.weak_dependencies.get(sel, False)

            if excluded and (not weak or (not ok and not ignored)):
                raise ExcludedSelection(sel, self._exclusion_message(sel, excluded, weak, manifest))

            self.exclusions[sel].update(excluded)
            self.ignores[sel].update(ignored)
            expansion.difference_update(excluded)
            expansion.difference_update(ignored)

        self.source_packages = {
            n for n in self.source_packages
            if not manifest.is_excluded(n) and not manifest.is_ignored(n)
        }
        self.osdeps = {
            n for n in self.osdeps
            if not manifest.is_excluded(n) and not manifest.is_ignored(n)
        }

    @staticmethod
    def _exclusion_message(sel: str, excluded: list[str], weak: bool, manifest: Manifest) -> str:
        base_msg = f"{sel} is selected in the manifest or on the command line"
        reasons = [(name, manifest.exclusion_reason(name)) for name in excluded]
        if len(reasons) == 1:
            name, reason = reasons[0]
            if sel == name:
                return f"{base_msg}, but it is excluded from the build: {reason}"
            if weak:
                return f"{base_msg}, but it expands to {name}, which is excluded from the build: {reason}"
            return f"{base_msg}, but its dependency {name} is excluded from the build: {reason}"
        details = "\n  ".join(f"{name}: {reason}" for name, reason in reasons)
        names = ", ".join(excluded)
        if weak:
            return f"{base_msg}, but expands to {names}, and all these packages are excluded from the build:\n  {details}"
        return f"{base_msg}, but it requires {names}, and all these packages are excluded from the build:\n  {details}"
