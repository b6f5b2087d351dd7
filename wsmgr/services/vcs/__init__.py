"""VCS 导入器

拆分说明:
- sources.py: GitImporter / SvnImporter / ArchiveImporter 与默认能力表
"""

from wsmgr.services.vcs.sources import (
    ArchiveImporter,
    GitImporter,
    SvnImporter,
    default_importer_table,
)

__all__ = ["ArchiveImporter", "GitImporter", "SvnImporter", "default_importer_table"]
