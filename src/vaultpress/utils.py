from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np


class _JSONEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime/date objects and numpy values."""
    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.generic):
            return obj.item()
        if isinstance(obj, Path):
            return obj.as_posix()
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        return super().default(obj)


def json_dumps(obj: Any, indent: int | None = None) -> str:
    """JSON serialize with datetime support."""
    return json.dumps(obj, cls=_JSONEncoder, ensure_ascii=False, indent=indent)


def to_json_safe(value: Any) -> Any:
    """Recursively convert frontmatter values (dates, sets, ...) to JSON types."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def decode_text(data: bytes, path: Path | None = None, max_bytes: int = 10_000_000) -> str:
    if len(data) > max_bytes:
        raise ValueError(f"File too large for text read: {path} ({len(data)} bytes)")
    return data.decode("utf-8", errors="replace")
