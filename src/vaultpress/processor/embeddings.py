from __future__ import annotations

import logging
from concurrent.futures import Executor
from pathlib import Path
from typing import Callable, Mapping, Sequence

import numpy as np

from ..cache import CacheContext, CacheStats
from ..issues import IssueCollector, IssueModule
from ..models import MediaType, Vector
from ..plugins.base import ImageEmbeddingPlugin, TextEmbeddingPlugin
from .records import DocumentDraft, MediaDraft

logger = logging.getLogger(__name__)


def embedding_text(draft: DocumentDraft) -> str:
    return draft.parsed.plain_text


def _cached(cache: Mapping[str, Vector], key: str, dims: int) -> Vector | None:
    vec = cache.get(key)
    if vec is None or len(vec) != dims:
        return None
    return vec


def embed_documents(
    drafts: list[DocumentDraft],
    embedder: TextEmbeddingPlugin,
    cache: CacheContext,
    cache_stats: CacheStats,
    issues: IssueCollector,
    batch_size: int = 32,
    cancelled: Callable[[], bool] = lambda: False,
) -> int:
    """Attach text embeddings; returns the number of freshly computed vectors.

    Any failing batch drops all fresh vectors of the run (cached ones stay)
    and is reported as a single embedding error.
    """
    dims = int(getattr(embedder, "dimensions", 0) or 0)
    if dims <= 0:
        logger.info("Text embedder reports no dimensions; skipping text embeddings")
        return 0

    pending: list[DocumentDraft] = []
    for d in drafts:
        vec = _cached(cache.text_embeddings, d.hash, dims)
        if vec is not None:
            cache_stats.hit("text_embeddings")
            d.embedding = vec
        else:
            cache_stats.miss("text_embeddings")
            pending.append(d)

    fresh: list[tuple[DocumentDraft, np.ndarray]] = []
    for start in range(0, len(pending), batch_size):
        if cancelled():
            return 0
        batch = pending[start:start + batch_size]
        try:
            vectors = np.asarray(embedder.batch_embed([embedding_text(d) for d in batch]), dtype=np.float32)
            if vectors.shape != (len(batch), dims):
                raise ValueError(f"expected {len(batch)}x{dims} vectors, got shape {vectors.shape}")
        except Exception as e:
            issues.add_embedding_error(str(e), IssueModule.TEXT_EMBEDDINGS,
                                       operation="batch_embed", item_count=len(batch))
            return 0
        fresh.extend(zip(batch, vectors))

    for d, vec in fresh:
        d.embedding = vec.tolist()
    logger.info(f"Text embeddings: {len(fresh)} computed, {len(drafts) - len(pending)} from cache")
    return len(fresh)


def embed_media(
    drafts: list[MediaDraft],
    embedder: ImageEmbeddingPlugin,
    input_dir: Path,
    cache: CacheContext,
    cache_stats: CacheStats,
    issues: IssueCollector,
    executor: Executor,
    cancelled: Callable[[], bool] = lambda: False,
) -> int:
    """Attach image embeddings to transcoded images (one model call per distinct hash).

    SVGs and other copied files have no raster to embed and are left alone.
    """
    dims = int(getattr(embedder, "dimensions", 0) or 0)
    images = [d for d in drafts if d.type == MediaType.IMAGE and d.transcoded]
    unique: dict[str, MediaDraft] = {}
    for d in images:
        unique.setdefault(d.hash, d)

    def work(draft: MediaDraft) -> tuple[Sequence[float] | None, str | None, bool]:
        if cancelled():
            return None, None, False
        vec = _cached(cache.image_embeddings, draft.hash, dims) if dims > 0 else None
        if vec is not None:
            cache_stats.hit("image_embeddings")
            return vec, None, False
        cache_stats.miss("image_embeddings")
        try:
            arr = np.asarray(embedder.embed_file(input_dir / draft.original_path), dtype=np.float32).ravel()
            if dims > 0 and arr.shape[0] != dims:
                raise ValueError(f"expected {dims} dimensions, got {arr.shape[0]}")
        except Exception as e:
            return None, str(e), False
        return arr.tolist(), None, True

    drafts_in_order = list(unique.values())
    by_hash: dict[str, Sequence[float]] = {}
    created = 0
    for draft, (vec, error, fresh) in zip(drafts_in_order, executor.map(work, drafts_in_order)):
        if error is not None:
            issues.add_embedding_error(error, IssueModule.IMAGE_EMBEDDINGS, draft.original_path, operation="embed_file")
            continue
        if vec is not None:
            by_hash[draft.hash] = vec
            created += int(fresh)

    for d in images:
        d.embedding = by_hash.get(d.hash)
    logger.info(f"Image embeddings: {created} computed, {len(by_hash) - created} from cache")
    return created
