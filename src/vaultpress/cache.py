"""Read-only lookups of previously computed media metadata and embeddings.

The processor consults a `CacheContext` by content hash before transcoding an
image or running an embedding model. It never writes to it: persisting fresh
results for the next run is the caller's job (usually by feeding the previous
output directory back through `load_cache_from_output`).
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .models import MediaMetadata, MediaSizeVariant, Vector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedMediaSizeVariant:
    suffix: str
    output_path: str
    width: int
    height: int
    size: int

    def to_variant(self) -> MediaSizeVariant:
        return MediaSizeVariant(self.suffix, self.output_path, self.width, self.height, self.size)


@dataclass(frozen=True)
class CachedMediaMetadata:
    width: int | None
    height: int | None
    format: str
    size: int
    original_size: int
    output_path: str
    sizes: tuple[CachedMediaSizeVariant, ...] = ()

    def to_metadata(self, content_hash: str) -> MediaMetadata:
        return MediaMetadata(
            hash=content_hash,
            format=self.format,
            size=self.size,
            original_size=self.original_size,
            width=self.width,
            height=self.height,
        )


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class CacheContext:
    media: Mapping[str, CachedMediaMetadata] = field(default_factory=dict)
    text_embeddings: Mapping[str, Vector] = field(default_factory=dict)
    image_embeddings: Mapping[str, Vector] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "media", _freeze(self.media))
        object.__setattr__(
            self, "text_embeddings", _freeze({k: tuple(v) for k, v in dict(self.text_embeddings).items()})
        )
        object.__setattr__(
            self, "image_embeddings", _freeze({k: tuple(v) for k, v in dict(self.image_embeddings).items()})
        )

    @property
    def is_empty(self) -> bool:
        return not (self.media or self.text_embeddings or self.image_embeddings)


class CacheStats:
    """Thread-safe hit/miss counters for one run."""

    KINDS = ("media", "text_embeddings", "image_embeddings")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = {k: 0 for k in self.KINDS}
        self._misses = {k: 0 for k in self.KINDS}

    def hit(self, kind: str) -> None:
        with self._lock:
            self._hits[kind] += 1

    def miss(self, kind: str) -> None:
        with self._lock:
            self._misses[kind] += 1

    def hits(self, kind: str) -> int:
        return self._hits[kind]

    def misses(self, kind: str) -> int:
        return self._misses[kind]

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                k: {"hits": self._hits[k], "misses": self._misses[k]} for k in self.KINDS
            }


def build_media_cache_from_manifest(
    entries: Iterable[Mapping[str, Any]],
) -> dict[str, CachedMediaMetadata]:
    """Build a media cache from a previous run's `media.json` entries."""
    cache: dict[str, CachedMediaMetadata] = {}
    for entry in entries:
        meta = entry.get("metadata") or {}
        content_hash = meta.get("hash")
        output_path = entry.get("outputPath")
        if not content_hash or not output_path:
            continue
        sizes = tuple(
            CachedMediaSizeVariant(
                suffix=s["suffix"],
                output_path=s["outputPath"],
                width=int(s["width"]),
                height=int(s["height"]),
                size=int(s.get("size", 0)),
            )
            for s in entry.get("sizes") or []
        )
        cache[content_hash] = CachedMediaMetadata(
            width=meta.get("width"),
            height=meta.get("height"),
            format=meta.get("format", ""),
            size=int(meta.get("size", 0)),
            original_size=int(meta.get("originalSize", meta.get("size", 0))),
            output_path=output_path,
            sizes=sizes,
        )
    return cache


def build_embedding_cache_from_manifest(
    mapping: Mapping[str, Iterable[float]] | None,
) -> dict[str, Vector]:
    """hash -> vector mapping from an `*-embedding-hash-map.json` payload."""
    if not mapping:
        return {}
    return {h: tuple(float(x) for x in vec) for h, vec in mapping.items() if vec}


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable cache manifest {path}: {e}")
        return None


def load_cache_from_output(output_dir: str | Path) -> CacheContext:
    """Rebuild a CacheContext from the artifacts of a previous run."""
    # Imported here to avoid a cycle with processor.output
    from .processor.output import OutputFiles

    out = Path(output_dir)
    media = build_media_cache_from_manifest(_read_json(out / OutputFiles.MEDIA) or [])
    text = build_embedding_cache_from_manifest(_read_json(out / OutputFiles.TEXT_EMBEDDINGS))
    image = build_embedding_cache_from_manifest(_read_json(out / OutputFiles.IMAGE_EMBEDDINGS))
    logger.info(
        f"Loaded cache from {out}: {len(media)} media, "
        f"{len(text)} text embeddings, {len(image)} image embeddings"
    )
    return CacheContext(media=media, text_embeddings=text, image_embeddings=image)
