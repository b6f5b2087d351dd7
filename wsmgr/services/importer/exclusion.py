"""排除传播

某个包无法构建时，所有（传递地）强依赖它的包也被排除，
并记录一条可读的因果链。可选依赖不参与传播。
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from wsmgr.core.exceptions import InternalError

if TYPE_CHECKING:
    from wsmgr.core.manifest import Manifest


def mark_exclusion_along_revdeps(
    manifest: Manifest,
    pkg_name: str,
    revdeps: Mapping[str, Iterable[str]],
    chain: list[str] | None = None,
    reason: str | None = None,
) -> None:
    """把 pkg_name 的排除沿 revdeps 传播给所有依赖它的包

    reason 为 None 表示传播起点，使用已登记的排除原因。
    一跳的依赖者记录 "its dependency <reason>"，更远的记录
    "<reason> (dependency chain: C>B>A)"。
    已被排除的包保持原因不变，因此重复调用没有额外效果。
    """
    chain = [pkg_name, *(chain or [])]
    if reason is None:
        reason = manifest.exclusion_reason(pkg_name)
        if reason is None:
            raise InternalError(f"{pkg_name} 没有被排除，无法传播排除")
    elif len(chain) == 2:
        manifest.exclude_package(pkg_name, f"its dependency {reason}")
    else:
        manifest.exclude_package(pkg_name, f"{reason} (dependency chain: {'>'.join(chain)})")

    for dependent in sorted(revdeps.get(pkg_name, ())):
        if not manifest.is_excluded(dependent):
            mark_exclusion_along_revdeps(manifest, dependent, revdeps, chain, reason)
