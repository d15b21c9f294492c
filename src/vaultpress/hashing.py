from __future__ import annotations

import hashlib
from pathlib import Path

DIGEST_SIZE = 32
SHORT_HASH_LENGTH = 16


def hash_bytes(data: bytes) -> str:
    """Content hash used as document and media identity (and cache key)."""
    h = hashlib.blake2b(digest_size=DIGEST_SIZE)
    h.update(data)
    return h.hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: str | Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute a stable hash of a file's bytes."""
    p = Path(path)
    h = hashlib.blake2b(digest_size=DIGEST_SIZE)
    with p.open("rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return h.hexdigest()


def short_hash(content_hash: str, length: int = SHORT_HASH_LENGTH) -> str:
    return content_hash[:length]
