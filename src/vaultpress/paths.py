from __future__ import annotations

import posixpath


def normalize_vault_path(value: str) -> str:
    """Normalize a vault-relative POSIX path ('./a/../b.png' -> 'b.png')."""
    value = value.replace("\\", "/").strip()
    if not value:
        return ""
    norm = posixpath.normpath(value)
    return "" if norm == "." else norm


def is_remote(value: str) -> bool:
    lowered = value.lower()
    return lowered.startswith(("http://", "https://", "data:", "mailto:", "//"))
