"""YAML 文件统一读写工具

集中管理 source.yml / manifest.yml / overrides.yml 等配置文件的读写。
读取失败统一转换为 ConfigError 并带上文件路径，写入使用原子替换。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from wsmgr.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# YAML 文件最大大小限制 (10MB)
MAX_YAML_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """原子写入文件：先写同目录临时文件再 rename"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        # 只捕获普通异常，不拦截 KeyboardInterrupt
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def load_yaml(path: str | Path, *, required: bool = False) -> dict[str, Any]:
    """读取 YAML 映射文件

    参数:
        path: 文件路径
        required: 为 True 时文件不存在抛 ConfigError，否则返回空字典

    异常:
        ConfigError: 文件过大、YAML 语法错误、顶层不是映射
    """
    p = Path(path)
    if not p.exists():
        if required:
            raise ConfigError(f"配置文件不存在: {p}", file=str(p))
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ConfigError(
            f"YAML 文件过大: {p} ({file_size} 字节), 超过限制 {MAX_YAML_SIZE} 字节",
            file=str(p),
        )

    try:
        with open(p, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"解析 YAML 文件失败: {p}: {e}", file=str(p)) from e

    if result is None:
        return {}
    if not isinstance(result, dict):
        raise ConfigError(
            f"{p} 顶层应为映射 (实际类型: {type(result).__name__})",
            file=str(p),
        )
    return result


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件，保持键顺序"""
    content = yaml.safe_dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )
    atomic_write(Path(path), content)
    logger.debug("已写入 %s", path)
