"""Mutable builders and worker results for the processing pipeline.

Records are accumulated in drafts across stages (parsing, slugging, link
resolution, embedding) and frozen into the public immutable types once.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from ..markdown.pipeline import ParsedMarkdown
from ..models import (
    CoverError,
    CoverImage,
    MediaMetadata,
    MediaSizeVariant,
    MediaType,
    ProcessedDocument,
    ProcessedMedia,
    Vector,
)
from .reconciler import VaultFile


def _vector(values: Sequence[float] | None) -> Vector | None:
    if values is None:
        return None
    return tuple(float(x) for x in values)


@dataclass
class MediaDraft:
    original_path: str
    output_path: str
    file_name: str
    type: MediaType
    hash: str
    format: str
    size: int
    original_size: int
    width: int | None = None
    height: int | None = None
    sizes: list[MediaSizeVariant] = field(default_factory=list)
    embedding: Sequence[float] | None = None
    cache_hit: bool = False
    transcoded: bool = False

    def freeze(self) -> ProcessedMedia:
        return ProcessedMedia(
            original_path=self.original_path,
            output_path=self.output_path,
            file_name=self.file_name,
            type=self.type,
            metadata=MediaMetadata(
                hash=self.hash,
                format=self.format,
                size=self.size,
                original_size=self.original_size,
                width=self.width,
                height=self.height,
            ),
            sizes=tuple(self.sizes),
            embedding=_vector(self.embedding),
        )


@dataclass
class MediaOutcome:
    """Result from a media worker."""

    file: VaultFile
    draft: MediaDraft | None = None
    copied: bool = False
    operation: str = "process"
    error: str | None = None


@dataclass
class DocumentDraft:
    hash: str
    file_name: str
    original_path: str
    parsed: ParsedMarkdown
    title: str
    created_at: str
    modified_at: str
    processed_at: str
    slug: str | None = None
    html: str | None = None
    cover: CoverImage | CoverError | None = None
    links: list[str] = field(default_factory=list)
    media_refs: list[str] = field(default_factory=list)
    embedding: Sequence[float] | None = None

    @property
    def folder(self) -> str:
        parent = self.original_path.rsplit("/", 1)
        return parent[0] if len(parent) == 2 else ""

    @property
    def frontmatter(self) -> dict[str, Any]:
        return self.parsed.frontmatter

    def freeze(self) -> ProcessedDocument:
        if self.slug is None or self.html is None:
            raise RuntimeError(f"Document {self.original_path} frozen before slug/render stage")
        p = self.parsed
        return ProcessedDocument(
            hash=self.hash,
            slug=self.slug,
            title=self.title,
            file_name=self.file_name,
            original_path=self.original_path,
            html=self.html,
            markdown=p.body,
            plain_text=p.plain_text,
            excerpt=p.excerpt,
            word_count=p.word_count,
            created_at=self.created_at,
            modified_at=self.modified_at,
            processed_at=self.processed_at,
            toc=tuple(p.toc),
            frontmatter=p.frontmatter,
            cover=self.cover,
            links=tuple(self.links),
            embedding=_vector(self.embedding),
        )


@dataclass
class DocumentOutcome:
    """Result from a document worker; `draft` is None for skipped/failed files."""

    file: VaultFile
    draft: DocumentDraft | None = None
    unpublished: bool = False
    error: str | None = None
    error_kind: str = "parse"  # parse|file-access


@dataclass
class ProcessStats:
    """Statistics from a processing run."""

    documents_scanned: int = 0
    documents_included: int = 0
    documents_skipped: int = 0
    documents_failed: int = 0
    media_scanned: int = 0
    media_processed: int = 0
    media_copied: int = 0
    media_failed: int = 0
    text_embeddings_created: int = 0
    image_embeddings_created: int = 0
    cache: dict[str, Any] = field(default_factory=dict)
    stage_seconds: dict[str, float] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentsScanned": self.documents_scanned,
            "documentsIncluded": self.documents_included,
            "documentsSkipped": self.documents_skipped,
            "documentsFailed": self.documents_failed,
            "mediaScanned": self.media_scanned,
            "mediaProcessed": self.media_processed,
            "mediaCopied": self.media_copied,
            "mediaFailed": self.media_failed,
            "textEmbeddingsCreated": self.text_embeddings_created,
            "imageEmbeddingsCreated": self.image_embeddings_created,
            "cache": self.cache,
            "stageSeconds": self.stage_seconds,
            "elapsedSeconds": self.elapsed_seconds,
        }
