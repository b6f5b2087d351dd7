"""源码包导入

拆分说明:
- walker.py: 按依赖关系遍历并导入选中的包
- exclusion.py: 沿反向依赖传播排除
"""

from wsmgr.services.importer.exclusion import mark_exclusion_along_revdeps
from wsmgr.services.importer.walker import ImportResult, PackageImportWalker

__all__ = ["ImportResult", "PackageImportWalker", "mark_exclusion_along_revdeps"]
