"""remotes 目录维护

- <root>/<remotes_dir>/<仓库身份>: 远程包集合的真实检出目录
- <config_dir>/remotes/<name>: 指向检出目录的、面向用户的符号链接

每次解析结束后，两处都只保留本次访问到的包集合。
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from wsmgr.core.exceptions import ConfigError
from wsmgr.core.package_set import PackageSet

logger = logging.getLogger(__name__)


class RemotesManager:
    """remotes 目录与用户符号链接目录"""

    def __init__(self, remotes_dir: Path, user_dir: Path) -> None:
        self.remotes_dir = remotes_dir
        self.user_dir = user_dir

    def create_user_dir(self, pkg_set: PackageSet) -> Path:
        """创建（或修复）<user_dir>/<name> → 检出目录 的符号链接"""
        self.user_dir.mkdir(parents=True, exist_ok=True)
        link = self.user_dir / pkg_set.name
        target = pkg_set.raw_local_dir
        if link.is_symlink():
            if Path(link.readlink()) == target:
                return link
            link.unlink()
        elif link.exists():
            raise ConfigError(f"{link} 已存在且不是符号链接，无法为包集合 {pkg_set.name} 创建链接")
        link.symlink_to(target, target_is_directory=True)
        logger.debug("符号链接: %s -> %s", link, target, extra={"pkg_set": pkg_set.name})
        return link

    def cleanup_remotes_dir(self, raw_dirs: Iterable[Path]) -> list[Path]:
        """删除 remotes 目录下不属于 raw_dirs 的检出目录"""
        keep = {Path(d).resolve() for d in raw_dirs}
        removed: list[Path] = []
        if not self.remotes_dir.is_dir():
            return removed
        for entry in sorted(self.remotes_dir.iterdir()):
            if entry.is_dir() and not entry.is_symlink() and entry.resolve() not in keep:
                shutil.rmtree(entry)
                removed.append(entry)
                logger.info("已删除不再需要的包集合检出: %s", entry)
        return removed

    def cleanup_user_dir(self, package_sets: Iterable[PackageSet]) -> list[Path]:
        """删除用户目录下不再对应任何包集合的符号链接"""
        keep = {pkg_set.user_local_dir for pkg_set in package_sets}
        removed: list[Path] = []
        if not self.user_dir.is_dir():
            return removed
        for entry in sorted(self.user_dir.iterdir()):
            if entry.is_symlink() and entry not in keep:
                entry.unlink()
                removed.append(entry)
                logger.debug("已删除过期符号链接: %s", entry)
        return removed
