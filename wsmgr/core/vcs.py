"""VCS 描述

VCSDefinition 描述包或包集合的源码位置: 类型、URL 和任意选项（branch、tag ...）。
由原始描述（字符串或映射）规范化得到，创建后不可变；覆盖 (override)
总是返回新对象。

原始描述的三种形式:
  * "git:https://host/repo.git"  → 类型:URL
  * "../some/dir" 或 "/abs/dir"   → 本地目录
  * {"type": "git", "url": ..., "branch": ...}  → 映射
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wsmgr.core.exceptions import ConfigError
from wsmgr.core.importers import LOCAL_TYPE, NONE_TYPE

if TYPE_CHECKING:
    from wsmgr.core.importers import ImporterTable

ABSOLUTE_PATH_OR_URI = re.compile(r"^([\w+]+:/)?/|^[:\w]+@|^(\w+@)?[\w.-]+:")


def to_absolute_url(url: str, root_dir: Path | None) -> str:
    """相对路径形式的 URL 转换为以 root_dir 为基准的绝对路径，URI 原样返回"""
    if url and root_dir is not None and not ABSOLUTE_PATH_OR_URI.match(url):
        return str((root_dir / url).resolve())
    return url


def _normalize_url(url: str) -> str:
    url = url.rstrip("/")
    return url.removesuffix(".git")


def raw_spec_to_s(spec: Any) -> str:
    if isinstance(spec, Mapping):
        items = sorted(spec.items(), key=lambda kv: str(kv[0]))
        return "{ " + ", ".join(f"{k}: {v}" for k, v in items) + " }"
    return str(spec)


@dataclass(frozen=True, eq=False)
class VCSDefinition:
    """规范化后的 VCS 描述"""

    type: str
    url: str = ""
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.type:
            raise ConfigError("VCS 类型不能为空")
        object.__setattr__(self, "options", dict(self.options))

    @classmethod
    def none(cls) -> VCSDefinition:
        return cls(NONE_TYPE)

    @property
    def is_none(self) -> bool:
        return self.type == NONE_TYPE

    @property
    def is_local(self) -> bool:
        return self.type == LOCAL_TYPE

    @property
    def needs_import(self) -> bool:
        return self.type not in (NONE_TYPE, LOCAL_TYPE)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.url:
            result["url"] = self.url
        result.update(self.options)
        return result

    def overrides_key(self) -> str | None:
        """仓库身份: 只由类型和规范化 URL 组成，不含选项

        两个只有 branch 不同的描述被视为同一个仓库。
        """
        if self.is_none:
            return None
        if self.is_local:
            return f"local:{self.url}"
        return f"{self.type}:{_normalize_url(self.url)}"

    def apply_override(
        self,
        patch: Any,
        table: ImporterTable,
        *,
        base_dir: Path | None = None,
    ) -> VCSDefinition:
        """把 patch 合并到当前描述上，返回新对象

        patch 改变了类型时整体替换，否则逐字段覆盖。
        """
        new = normalize_spec(patch, table, base_dir=base_dir)
        if "type" not in new or new["type"] == self.type:
            merged = {**self.to_dict(), **new}
        else:
            merged = new
        return from_spec(merged, table, base_dir=base_dir, raw=patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VCSDefinition):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(str(self))

    def __str__(self) -> str:
        if self.is_none:
            return "none"
        desc = f"{self.type}:{self.url}"
        if self.options:
            opts = " ".join(
                f"{k}={v}" for k, v in sorted(self.options.items(), key=lambda kv: str(kv[0]))
            )
            desc = f"{desc} {opts}"
        return desc

    def __repr__(self) -> str:
        return f"VCSDefinition({self})"


def normalize_spec(
    raw: Any,
    table: ImporterTable,
    *,
    base_dir: Path | None = None,
) -> dict[str, Any]:
    """把原始描述转换为映射形式，不做完整性校验"""
    if isinstance(raw, str):
        vcs_type, sep, rest = raw.partition(":")
        if sep and table.is_known(vcs_type) and vcs_type != LOCAL_TYPE:
            return {"type": vcs_type, "url": rest}
        if sep and table.has_source_handler(vcs_type):
            return table.call_source_handler(vcs_type, rest, {})
        if sep and vcs_type == LOCAL_TYPE:
            raw = rest

        path = Path(raw).expanduser()
        if not path.is_absolute():
            if base_dir is None:
                raise ConfigError(f"VCS 路径 '{raw}' 是相对路径，但没有给出基准目录")
            path = base_dir / path
        path = path.resolve()
        if not path.is_dir():
            raise ConfigError(f"'{raw}' 既不是远程源描述，也不是已存在的本地目录")
        return {"type": LOCAL_TYPE, "url": str(path)}

    if isinstance(raw, Mapping):
        spec = {str(k): v for k, v in raw.items()}
        if "url" not in spec:
            for key in list(spec):
                if table.has_source_handler(key):
                    value = spec.pop(key)
                    return table.call_source_handler(key, str(value), spec)
        return spec

    raise ConfigError(
        f"VCS 描述格式错误 ({raw!r})，应为字符串或映射 (例如 github: my/repo)"
    )


def from_spec(
    spec: Mapping[str, Any],
    table: ImporterTable,
    *,
    base_dir: Path | None = None,
    raw: Any = None,
) -> VCSDefinition:
    """由已规范化的映射创建 VCSDefinition 并校验"""
    spec = dict(spec)
    raw = spec if raw is None else raw
    vcs_type = spec.pop("type", None)
    url = spec.pop("url", None)
    if not vcs_type:
        raise ConfigError(
            f"源描述 {raw_spec_to_s(raw)} 规范化后为 {raw_spec_to_s(spec)}，没有 VCS 类型"
        )
    vcs_type = str(vcs_type)
    if not url and vcs_type != NONE_TYPE:
        raise ConfigError(
            f"源描述 {raw_spec_to_s(raw)} 没有 URL，只有 none 类型可以省略 URL"
        )
    if not table.is_known(vcs_type):
        raise ConfigError(f"版本控制类型 {vcs_type} 未知")

    url = str(url or "")
    if vcs_type == LOCAL_TYPE:
        path = Path(url).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        url = str(path.resolve())
    elif vcs_type != NONE_TYPE:
        url = to_absolute_url(url, base_dir)
    return VCSDefinition(vcs_type, url, spec)


def normalize(
    raw: Any,
    table: ImporterTable,
    *,
    base_dir: Path | None = None,
) -> VCSDefinition:
    """原始描述 → VCSDefinition

    异常:
        ConfigError: 无法确定类型或 URL、类型未注册、本地目录不存在
    """
    return from_spec(normalize_spec(raw, table, base_dir=base_dir), table, base_dir=base_dir, raw=raw)
