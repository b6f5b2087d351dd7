"""包集合服务

拆分说明:
- resolver.py: 递归导入与去重
- sequencer.py: 依赖顺序与用户顺序的合并排序
- remotes.py: 检出目录与用户符号链接的维护
"""

from wsmgr.services.pkgset.remotes import RemotesManager
from wsmgr.services.pkgset.resolver import PackageSetResolver, ResolveResult
from wsmgr.services.pkgset.sequencer import sequence, topological_order

__all__ = [
    "PackageSetResolver",
    "RemotesManager",
    "ResolveResult",
    "sequence",
    "topological_order",
]
