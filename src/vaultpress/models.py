from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

Vector = tuple[float, ...]


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


@dataclass(frozen=True)
class TocItem:
    level: int
    text: str
    slug: str

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "text": self.text, "slug": self.slug}


@dataclass(frozen=True)
class MediaSizeVariant:
    suffix: str
    output_path: str
    width: int
    height: int
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "suffix": self.suffix,
            "outputPath": self.output_path,
            "width": self.width,
            "height": self.height,
            "size": self.size,
        }


@dataclass(frozen=True)
class MediaMetadata:
    hash: str
    format: str
    size: int
    original_size: int
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "size": self.size,
            "originalSize": self.original_size,
            "hash": self.hash,
        }


@dataclass(frozen=True)
class ProcessedMedia:
    """A media file after transcoding (or verbatim copy)."""

    original_path: str
    output_path: str
    file_name: str
    type: MediaType
    metadata: MediaMetadata
    sizes: tuple[MediaSizeVariant, ...] = ()
    embedding: Vector | None = None

    @property
    def hash(self) -> str:
        return self.metadata.hash

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "originalPath": self.original_path,
            "outputPath": self.output_path,
            "fileName": self.file_name,
            "type": self.type.value,
            "metadata": self.metadata.to_dict(),
        }
        if self.sizes:
            d["sizes"] = [s.to_dict() for s in self.sizes]
        if self.embedding is not None:
            d["embedding"] = list(self.embedding)
        return d


@dataclass(frozen=True)
class CoverImage:
    original: str
    url: str
    media_hash: str | None = None
    output_path: str | None = None
    width: int | None = None
    height: int | None = None
    sizes: tuple[MediaSizeVariant, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "url": self.url,
            "hash": self.media_hash,
            "outputPath": self.output_path,
            "width": self.width,
            "height": self.height,
            "sizes": [s.to_dict() for s in self.sizes],
        }


@dataclass(frozen=True)
class CoverError:
    original: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"original": self.original, "error": self.error}


@dataclass(frozen=True)
class ProcessedDocument:
    """One included Markdown document."""

    hash: str
    slug: str
    title: str
    file_name: str
    original_path: str
    html: str
    markdown: str
    plain_text: str
    excerpt: str
    word_count: int
    created_at: str
    modified_at: str
    processed_at: str
    toc: tuple[TocItem, ...] = ()
    frontmatter: dict[str, Any] = field(default_factory=dict)
    cover: CoverImage | CoverError | None = None
    links: tuple[str, ...] = ()
    embedding: Vector | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "hash": self.hash,
            "slug": self.slug,
            "title": self.title,
            "fileName": self.file_name,
            "originalPath": self.original_path,
            "content": self.html,
            "markdown": self.markdown,
            "plainText": self.plain_text,
            "excerpt": self.excerpt,
            "wordCount": self.word_count,
            "toc": [t.to_dict() for t in self.toc],
            "frontmatter": self.frontmatter,
            "createdAt": self.created_at,
            "modifiedAt": self.modified_at,
            "processedAt": self.processed_at,
        }
        if self.cover is not None:
            d["cover"] = self.cover.to_dict()
        if self.links:
            d["links"] = list(self.links)
        if self.embedding is not None:
            d["embedding"] = list(self.embedding)
        return d


@dataclass(frozen=True)
class SimilarityResult:
    """Pairwise cosine scores plus ranked neighbours per document hash.

    `pairwise_scores` holds one entry per unordered pair keyed "<a>-<b>" with
    `a` first in input order; use `score()` to look up either order.
    """

    pairwise_scores: dict[str, float]
    similar_documents: dict[str, list[str]]
    metadata: dict[str, Any] = field(default_factory=dict)

    def score(self, a: str, b: str) -> float | None:
        s = self.pairwise_scores.get(f"{a}-{b}")
        if s is None:
            s = self.pairwise_scores.get(f"{b}-{a}")
        return s

    def to_dict(self) -> dict[str, Any]:
        return {
            "pairwiseScores": self.pairwise_scores,
            "similarPosts": self.similar_documents,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class DatabaseResult:
    database_path: str
    tables: tuple[str, ...]
    row_counts: dict[str, int]
    has_vector_search: bool
    has_fts: bool
    schema_version: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "databasePath": self.database_path,
            "tables": list(self.tables),
            "rowCounts": self.row_counts,
            "hasVectorSearch": self.has_vector_search,
            "hasFts": self.has_fts,
            "schemaVersion": self.schema_version,
        }
