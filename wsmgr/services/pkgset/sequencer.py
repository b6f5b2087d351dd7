"""包集合排序

结果满足: 每个包集合排在它导入的所有包集合之后，根（主配置）总在最后；
在依赖关系允许的范围内保留用户在 package_sets 中声明的顺序。
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from wsmgr.core.exceptions import ConfigError, InternalError
from wsmgr.core.package_set import PackageSet

logger = logging.getLogger(__name__)


def topological_order(package_sets: Iterable[PackageSet]) -> list[PackageSet]:
    """Kahn 算法（FIFO 待处理队列）

    异常:
        ConfigError: 存在循环导入，消息中按名称排序列出涉及的包集合
    """
    pending = deque(package_sets)
    ordered: list[PackageSet] = []
    done: set[str] = set()
    while pending:
        progressed = False
        for _ in range(len(pending)):
            pkg_set = pending.popleft()
            if all(dep.repository_id in done for dep in pkg_set.imports):
                ordered.append(pkg_set)
                done.add(pkg_set.repository_id)
                progressed = True
            else:
                pending.append(pkg_set)
        if not progressed:
            names = sorted(s.name for s in pending)
            raise ConfigError(f"包集合之间存在循环导入: {', '.join(names)}")
    return ordered


def _stable_repair(preferred: list[PackageSet]) -> list[PackageSet]:
    """依赖优先的稳定重排: 每次取列表中最靠前且依赖都已就位的包集合"""
    remaining = list(preferred)
    waiting = {s.repository_id for s in remaining}
    result: list[PackageSet] = []
    while remaining:
        for i, pkg_set in enumerate(remaining):
            if not any(dep.repository_id in waiting for dep in pkg_set.imports):
                result.append(remaining.pop(i))
                waiting.discard(pkg_set.repository_id)
                break
        else:
            raise InternalError("无法为包集合确定满足依赖的顺序")
    return result


def sequence(package_sets: Iterable[PackageSet], root: PackageSet) -> list[PackageSet]:
    """按导入关系排序，根排在最后且只出现一次"""
    package_sets = list(package_sets)
    topo = topological_order(package_sets)

    preferred = [s for s in root.imports if s.repository_id != root.repository_id]
    placed = {s.repository_id for s in preferred}
    for pkg_set in topo:
        if pkg_set.repository_id == root.repository_id or pkg_set.repository_id in placed:
            continue
        ids = [s.repository_id for s in preferred]
        positions = [ids.index(dep.repository_id) for dep in pkg_set.imports if dep.repository_id in placed]
        preferred.insert(max(positions) + 1 if positions else 0, pkg_set)
        placed.add(pkg_set.repository_id)

    ordered = [*_stable_repair(preferred), root]
    if ordered[-1] is not root or sum(1 for s in ordered if s is root) != 1:
        raise InternalError("根包集合应当在排序结果的最后且只出现一次")
    logger.debug("包集合顺序: %s", ", ".join(s.name for s in ordered))
    return ordered
