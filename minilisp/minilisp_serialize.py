from __future__ import annotations

import json
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import collections.abc

import yaml

from minilisp.minilisp_datatypes import SExpr


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        enc = encoding or 'utf-8'
        try:
            return data.decode(enc, errors='replace')
        except LookupError:
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _encoding_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r'charset\s*=\s*([^\s;]+)', content_type, re.IGNORECASE)
    if m:
        return m.group(1).strip('"').strip("'")
    return None


def _to_builtin(obj: Any) -> Any:
    """Convert MiniLISP runtime values into plain JSON/YAML-safe structures."""
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {str(k): _to_builtin(v) for k, v in obj.items()}
    if isinstance(obj, bool) or obj is None:
        return obj
    if isinstance(obj, Decimal):
        # Keep the exact digits; a float would round them.
        return format(obj, 'f')
    if isinstance(obj, float):
        return float(obj)
    if isinstance(obj, SExpr):
        from minilisp.minilisp_printer import Printer
        return Printer().pformat(obj)
    return obj


def detect_format(content_type: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml'.
    Uses Content-Type (or a file suffix) first; falls back to simple data sniffing.
    """
    ct = (content_type or "").lower()
    if 'json' in ct:
        return 'json'
    if 'yaml' in ct or ct == 'yml':
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        if s:
            # YAML is a superset of JSON and the only other structured format.
            return 'yaml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert wire data (bytes/string) to native Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses content_type, then sniffing.
    Returns raw text when the format is unknown.
    """
    enc = _encoding_from_content_type(content_type)
    text = _norm_text(data, encoding=enc)
    f = (fmt or detect_format(content_type, text))
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Fallback to YAML if declared JSON but content is actually YAML-like
            return yaml.safe_load(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    return text


def serialize(value: Any, *, fmt: str, pretty: bool = True) -> str:
    """
    Convert a MiniLISP runtime value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def load_globals(path: str | Path) -> dict:
    """Read a JSON or YAML mapping of global bindings from disk."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    data = deserialize(text, content_type=p.suffix.lstrip('.'))
    if data is None:
        return {}
    if not isinstance(data, collections.abc.Mapping):
        raise ValueError(f"globals file {str(p)!r} must contain a mapping, got {type(data).__name__}")
    for key in data:
        if not isinstance(key, str):
            raise ValueError(f"globals file {str(p)!r} has a non-string key {key!r}")
    return dict(data)


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "load_globals",
]
