from __future__ import annotations

import logging
import posixpath
import threading
from pathlib import Path, PurePosixPath
from urllib.parse import unquote

from ..cache import CacheContext, CachedMediaMetadata, CacheStats
from ..config import MediaConfig
from ..hashing import hash_bytes, short_hash
from ..models import MediaSizeVariant, MediaType
from ..paths import is_remote, normalize_vault_path
from ..plugins.base import ImageProcessOptions, ImageProcessorPlugin
from .records import MediaDraft, MediaOutcome
from .reconciler import VaultFile, media_type_for

logger = logging.getLogger(__name__)

FORMAT_EXTENSIONS = {"jpeg": "jpg", "webp": "webp", "png": "png", "avif": "avif"}


def media_output_path(
    media_cfg: MediaConfig,
    content_hash: str,
    rel_path: str,
    ext: str,
    suffix: str | None = None,
) -> str:
    """Output location relative to the output directory (POSIX).

    Hash naming: `<subdir>/[<hash[:2]>/]<hash[:16]>[-suffix].<ext>`;
    otherwise the vault-relative folder and stem are kept.
    """
    tail = f"-{suffix}" if suffix else ""
    if media_cfg.use_hash:
        name = f"{short_hash(content_hash)}{tail}.{ext}"
        folder = content_hash[:2] if media_cfg.use_sharding else ""
    else:
        p = PurePosixPath(rel_path)
        name = f"{p.stem}{tail}.{ext}"
        folder = "" if str(p.parent) == "." else str(p.parent)
    return posixpath.join(*[part for part in (media_cfg.output_subdir, folder, name) if part])


class MediaStage:
    """Processes one media file per call; safe to run from a thread pool.

    Files with identical content are transcoded once per run, later copies
    reuse the first result under their own original path.
    """

    def __init__(
        self,
        media_cfg: MediaConfig,
        output_dir: Path,
        plugin: ImageProcessorPlugin,
        cache: CacheContext,
        cache_stats: CacheStats,
    ) -> None:
        self.media_cfg = media_cfg
        self.output_dir = Path(output_dir)
        self.plugin = plugin
        self.cache = cache
        self.cache_stats = cache_stats
        self._locks: dict[str, threading.Lock] = {}
        self._done: dict[str, MediaDraft] = {}
        self._guard = threading.Lock()

    def _lock_for(self, content_hash: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(content_hash, threading.Lock())

    def process_file(self, f: VaultFile) -> MediaOutcome:
        media_type = media_type_for(f.path) or MediaType.OTHER
        try:
            data = f.path.read_bytes()
        except OSError as e:
            return MediaOutcome(f, operation="read", error=str(e))
        content_hash = hash_bytes(data)
        original_size = len(data)
        processable = media_type == MediaType.IMAGE and self.plugin.can_process(f.path)

        with self._lock_for(content_hash):
            previous = self._done.get(content_hash)
            if previous is not None:
                return MediaOutcome(f, draft=self._reuse(previous, f), copied=not processable)

            if processable:
                cached = self.cache.media.get(content_hash)
                if cached is not None and self._cache_matches(cached, content_hash, f.rel_path):
                    self.cache_stats.hit("media")
                    draft = self._from_cache(f, content_hash, cached)
                else:
                    self.cache_stats.miss("media")
                    try:
                        draft = self._transcode(f, content_hash, original_size)
                    except Exception as e:
                        return MediaOutcome(f, operation="process", error=str(e))
            else:
                try:
                    draft = self._copy(f, media_type, content_hash, original_size)
                except Exception as e:
                    return MediaOutcome(f, operation="copy", error=str(e))
            self._done[content_hash] = draft
        return MediaOutcome(f, draft=draft, copied=not processable)

    @staticmethod
    def _reuse(previous: MediaDraft, f: VaultFile) -> MediaDraft:
        return MediaDraft(
            original_path=f.rel_path,
            output_path=previous.output_path,
            file_name=f.path.name,
            type=previous.type,
            hash=previous.hash,
            format=previous.format,
            size=previous.size,
            original_size=previous.original_size,
            width=previous.width,
            height=previous.height,
            sizes=list(previous.sizes),
            cache_hit=previous.cache_hit,
            transcoded=previous.transcoded,
        )

    def _cache_matches(self, cached: CachedMediaMetadata, content_hash: str, rel_path: str) -> bool:
        """A cache entry is usable only if fresh processing would name the same files."""
        cfg = self.media_cfg
        if cached.format != cfg.format or cached.width is None:
            return False
        ext = FORMAT_EXTENSIONS[cfg.format]
        if cached.output_path != media_output_path(cfg, content_hash, rel_path, ext):
            return False
        # The primary is never resized, so its width is the native width
        expected = [
            (s.suffix, media_output_path(cfg, content_hash, rel_path, ext, s.suffix))
            for s in cfg.sizes
            if s.width is not None and s.width < cached.width
        ]
        return [(s.suffix, s.output_path) for s in cached.sizes] == expected

    def _from_cache(self, f: VaultFile, content_hash: str, cached: CachedMediaMetadata) -> MediaDraft:
        return MediaDraft(
            original_path=f.rel_path,
            output_path=cached.output_path,
            file_name=f.path.name,
            type=MediaType.IMAGE,
            hash=content_hash,
            format=cached.format,
            size=cached.size,
            original_size=cached.original_size,
            width=cached.width,
            height=cached.height,
            sizes=[s.to_variant() for s in cached.sizes],
            cache_hit=True,
            transcoded=True,
        )

    def _transcode(self, f: VaultFile, content_hash: str, original_size: int) -> MediaDraft:
        cfg = self.media_cfg
        ext = FORMAT_EXTENSIONS[cfg.format]
        meta = self.plugin.get_metadata(f.path)

        primary_rel = media_output_path(cfg, content_hash, f.rel_path, ext)
        primary = self.plugin.process(
            f.path,
            self.output_dir / primary_rel,
            ImageProcessOptions(format=cfg.format, quality=cfg.quality),
        )

        sizes: list[MediaSizeVariant] = []
        for size in cfg.sizes:
            # Never upscale: only strictly smaller widths get a variant
            if size.width is None or size.width >= meta.width:
                continue
            rel = media_output_path(cfg, content_hash, f.rel_path, ext, size.suffix)
            r = self.plugin.process(
                f.path,
                self.output_dir / rel,
                ImageProcessOptions(width=size.width, height=size.height, format=cfg.format, quality=cfg.quality),
            )
            sizes.append(MediaSizeVariant(size.suffix, rel, r.width, r.height, r.size))

        logger.debug(f"Transcoded {f.rel_path} -> {primary_rel} ({len(sizes)} variants)")
        return MediaDraft(
            original_path=f.rel_path,
            output_path=primary_rel,
            file_name=f.path.name,
            type=MediaType.IMAGE,
            hash=content_hash,
            format=primary.format,
            size=primary.size,
            original_size=original_size,
            width=primary.width,
            height=primary.height,
            sizes=sizes,
            transcoded=True,
        )

    def _copy(self, f: VaultFile, media_type: MediaType, content_hash: str, original_size: int) -> MediaDraft:
        ext = f.path.suffix.lower().lstrip(".")
        rel = media_output_path(self.media_cfg, content_hash, f.rel_path, ext)
        self.plugin.copy(f.path, self.output_dir / rel)
        return MediaDraft(
            original_path=f.rel_path,
            output_path=rel,
            file_name=f.path.name,
            type=media_type,
            hash=content_hash,
            format=ext,
            size=original_size,
            original_size=original_size,
        )


class MediaIndex:
    """Lookup of processed media by vault path or bare file name."""

    def __init__(self, drafts: list[MediaDraft], domain: str | None = None) -> None:
        self.domain = domain.rstrip("/") if domain else None
        self.by_path: dict[str, MediaDraft] = {}
        self.by_name: dict[str, MediaDraft] = {}
        for d in drafts:
            self.by_path.setdefault(d.original_path, d)
            self.by_name.setdefault(PurePosixPath(d.original_path).name.lower(), d)

    def __len__(self) -> int:
        return len(self.by_path)

    def public_url(self, draft: MediaDraft) -> str:
        if self.domain:
            return f"{self.domain}/{draft.output_path}"
        return f"/{draft.output_path}"

    def resolve(self, value: str, folder: str = "") -> MediaDraft | None:
        """Try the value as a vault path, relative to `folder`, then without a leading '/'."""
        if not value or is_remote(value):
            return None
        for raw in dict.fromkeys((value, unquote(value))):
            for candidate in (
                normalize_vault_path(raw),
                normalize_vault_path(posixpath.join(folder, raw)) if folder else None,
                normalize_vault_path(raw.lstrip("/")),
            ):
                if candidate and candidate in self.by_path:
                    return self.by_path[candidate]
        return None

    def resolve_embed(self, target: str, folder: str = "") -> MediaDraft | None:
        """Obsidian embeds also match by file name anywhere in the vault."""
        found = self.resolve(target, folder)
        if found is None:
            found = self.by_name.get(PurePosixPath(target).name.lower())
        return found
