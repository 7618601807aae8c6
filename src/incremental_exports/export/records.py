# src/incremental_exports/export/records.py

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from ..core.ports import JSONRecord

_BRACKET = re.compile(r"\[(['\"]?)([^\]'\"]+)\1\]")


def to_ndjson(records: Iterable[JSONRecord]) -> bytes:
    """One JSON document per line (each newline-terminated), UTF-8, no enclosing array."""
    return "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in records).encode("utf-8")


def cursor_to_rfc3339(cursor: str | int | float | None) -> str | None:
    """Epoch-seconds cursor -> RFC 3339 UTC timestamp; None for non-numeric cursors."""
    if cursor is None or cursor == "":
        return None
    try:
        seconds = float(cursor)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=UTC).isoformat().replace("+00:00", "Z")


def _split_path(path: str) -> list[str]:
    # a['b'][0].c -> ["a", "b", "0", "c"]
    normalized = _BRACKET.sub(r".\2", path.strip()).lstrip(".")
    return [p for p in normalized.split(".") if p]


def _child(obj: Any, part: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(part)
    if isinstance(obj, list) and part.isdigit():
        idx = int(part)
        return obj[idx] if idx < len(obj) else None
    return None


def _delete_path(obj: Any, parts: list[str]) -> None:
    for part in parts[:-1]:
        obj = _child(obj, part)
        if obj is None:
            return
    last = parts[-1]
    if isinstance(obj, dict):
        obj.pop(last, None)
    elif isinstance(obj, list) and last.isdigit() and int(last) < len(obj):
        del obj[int(last)]


def delete_keys(data: Any, keys: Iterable[str] | None) -> Any:
    """
    Remove keys from a record or a list of records, in place.

    Plain keys are removed at the top level; dotted or bracketed paths
    (`a.b`, `a['b']`, `a[0].c`) walk into nested objects. Missing paths are
    ignored. Returns `data` for chaining.
    """
    paths = [_split_path(k) for k in (keys or []) if k and k.strip()]
    if not paths:
        return data

    targets = data if isinstance(data, list) else [data]
    for obj in targets:
        if not isinstance(obj, dict):
            continue
        for parts in paths:
            if parts:
                _delete_path(obj, parts)
    return data
