from __future__ import annotations

import json
from typing import Any, Optional

import yaml

from elx.elx_expressions import expression_from_dict


# --------------------------
# Helpers
# --------------------------

def _to_builtin(obj: Any) -> Any:
    # Compiled expressions persist through their mapping form
    if hasattr(obj, 'to_dict'):
        return _to_builtin(obj.to_dict())
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _to_builtin(v) for k, v in obj.items()}
    return obj


def detect_format(data_hint: Optional[str] = None) -> str:
    """
    Returns 'json' when the text looks like JSON, else 'yaml'.
    """
    s = (data_hint or "").lstrip()
    if s.startswith('{') or s.startswith('['):
        return 'json'
    return 'yaml'


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str, *, fmt: Optional[str] = None) -> Any:
    """
    Convert persisted text to plain Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, the text is sniffed.
    """
    text = data.decode('utf-8') if isinstance(data, (bytes, bytearray)) else data
    f = (fmt or detect_format(text)).lower()
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Declared JSON but YAML-like content
            return yaml.safe_load(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any, *, fmt: str = 'json', pretty: bool = True) -> str:
    """
    Convert a value, or a compiled expression, into text.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def dump_expression(expression, *, fmt: str = 'json') -> str:
    return serialize(expression, fmt=fmt)


def load_expression(data: bytes | bytearray | str, *, fmt: Optional[str] = None):
    """Rebuilds a compiled expression; its tree is re-parsed and its functions re-resolved on first use."""
    return expression_from_dict(deserialize(data, fmt=fmt))


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "dump_expression",
    "load_expression",
]
