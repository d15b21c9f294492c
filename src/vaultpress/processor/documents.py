from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any

from ..hashing import hash_bytes
from ..markdown.pipeline import FrontmatterError, MarkdownPipeline
from ..models import CoverError, CoverImage
from ..paths import is_remote
from ..utils import decode_text
from .media import MediaIndex
from .records import DocumentDraft, DocumentOutcome
from .reconciler import VaultFile

logger = logging.getLogger(__name__)

COVER_FIELDS = ("cover", "image", "thumbnail", "coverImage", "cover_image")

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


def _flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
    return None


def is_published(frontmatter: dict[str, Any]) -> bool:
    """False for `draft: true` or `published: false`."""
    return _flag(frontmatter.get("draft")) is not True and _flag(frontmatter.get("published")) is not False


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def resolve_title(frontmatter: dict[str, Any], heading_title: str | None, file_name: str) -> str:
    title = frontmatter.get("title")
    if isinstance(title, (str, int, float)) and str(title).strip():
        return str(title).strip()
    if heading_title:
        return heading_title
    return PurePosixPath(file_name).stem


def resolve_cover(
    frontmatter: dict[str, Any], folder: str, media_index: MediaIndex
) -> CoverImage | CoverError | None:
    """Find the first cover field and resolve it against the media index."""
    value = None
    for name in COVER_FIELDS:
        raw = frontmatter.get(name)
        if isinstance(raw, str) and raw.strip():
            value = raw.strip()
            break
    if value is None:
        return None
    if is_remote(value):
        return CoverImage(original=value, url=value)

    found = media_index.resolve(value, folder)
    if found is None:
        return CoverError(original=value, error=f'Cover image not found: "{value}"')
    return CoverImage(
        original=value,
        url=media_index.public_url(found),
        media_hash=found.hash,
        output_path=found.output_path,
        width=found.width,
        height=found.height,
        sizes=tuple(found.sizes),
    )


class DocumentStage:
    """Reads, hashes and parses one document per call (thread-safe)."""

    def __init__(self, pipeline: MarkdownPipeline, process_all_files: bool, processed_at: str) -> None:
        self.pipeline = pipeline
        self.process_all_files = process_all_files
        self.processed_at = processed_at

    def parse_file(self, f: VaultFile) -> DocumentOutcome:
        try:
            data = f.path.read_bytes()
            st = f.path.stat()
        except OSError as e:
            return DocumentOutcome(f, error=str(e), error_kind="file-access")

        try:
            parsed = self.pipeline.parse(decode_text(data, f.path))
        except FrontmatterError as e:
            return DocumentOutcome(f, error=str(e))
        except Exception as e:
            logger.debug(f"Markdown parse failed for {f.rel_path}", exc_info=True)
            return DocumentOutcome(f, error=f"{type(e).__name__}: {e}")

        if not self.process_all_files and not is_published(parsed.frontmatter):
            logger.debug(f"Skipping unpublished document {f.rel_path}")
            return DocumentOutcome(f, unpublished=True)

        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return DocumentOutcome(
            f,
            draft=DocumentDraft(
                hash=hash_bytes(data),
                file_name=f.path.name,
                original_path=f.rel_path,
                parsed=parsed,
                title=resolve_title(parsed.frontmatter, parsed.heading_title, f.path.name),
                created_at=_iso(created),
                modified_at=_iso(st.st_mtime),
                processed_at=self.processed_at,
            ),
        )
