"""配置文件中的 $VAR / ${VAR} 变量展开"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from wsmgr.core.exceptions import ConfigError

_VAR_RE = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


def expand(value: Any, variables: Mapping[str, Any]) -> Any:
    """递归展开字符串、列表和映射中的变量，未定义的变量抛 ConfigError"""
    if isinstance(value, str):
        def _sub(match: re.Match[str]) -> str:
            name = match.group(1) or match.group(2)
            if name not in variables:
                raise ConfigError(
                    f"无法展开 '{value}': 变量 {name} 未定义 (已定义: {', '.join(sorted(variables))})"
                )
            return str(variables[name])

        return _VAR_RE.sub(_sub, value)
    if isinstance(value, Mapping):
        return {k: expand(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [expand(v, variables) for v in value]
    return value


def resolve_constants(
    constants: Mapping[str, Any], variables: Mapping[str, Any],
) -> dict[str, Any]:
    """解析常量定义，常量之间可以相互引用（与声明顺序无关）"""
    resolved: dict[str, Any] = {}
    pending = dict(constants)
    while pending:
        progressed = False
        last_error: ConfigError | None = None
        for name, raw in list(pending.items()):
            try:
                resolved[name] = expand(raw, {**variables, **resolved})
            except ConfigError as e:
                last_error = e
                continue
            del pending[name]
            progressed = True
        if not progressed and last_error is not None:
            raise last_error
    return resolved
