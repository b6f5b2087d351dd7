"""集中配置管理

所有路径与行为开关集中在 Config，支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from wsmgr.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """全局配置"""

    # 目录（config_dir / remotes_dir 相对 root_dir）
    root_dir: str = "."
    config_dir: str = "wsconfig"
    remotes_dir: str = ".remotes"
    manifest_file: str = "manifest.yml"
    overrides_file: str = "overrides.yml"

    # 导入
    parallel_import_level: int = 4
    retry_count: int = 0
    keep_going: bool = False
    auto_exclude: bool = False
    do_update: bool = True

    # OS 依赖安装命令模板，{packages} 会被替换；为空时仅检查工具是否在 PATH 中
    osdeps_install_cmd: str = ""

    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "wsconfig/config.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)

    # ---- 派生路径 ----

    @property
    def root_path(self) -> Path:
        return Path(self.root_dir).resolve()

    @property
    def config_path(self) -> Path:
        return self.root_path / self.config_dir

    @property
    def remotes_path(self) -> Path:
        return self.root_path / self.remotes_dir

    @property
    def remotes_user_path(self) -> Path:
        """面向用户的包集合符号链接目录"""
        return self.config_path / "remotes"


# 全局单例，由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "wsconfig/config.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
