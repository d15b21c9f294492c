"""The Processor: turns a vault into documents, media, embeddings and a database.

Stages run in order (media, documents, slugs, links, embeddings, similarity,
database, output). Per-file work inside a stage runs on a bounded thread pool;
results are merged back in lexicographic path order so that slug assignment
and issue ordering do not depend on scheduling.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from ..cache import CacheContext, CacheStats
from ..config import ProcessorConfig
from ..errors import ConfigurationError, ProcessingError, VaultPressError
from ..issues import IssueCategory, IssueCollector, IssueModule, IssueReport, IssueSeverity
from ..markdown.pipeline import MarkdownPipeline
from ..models import CoverError, DatabaseResult, ProcessedDocument, ProcessedMedia, SimilarityResult
from ..plugins.base import (
    DATABASE,
    IMAGE_EMBEDDER,
    IMAGE_PROCESSOR,
    SIMILARITY,
    TEXT_EMBEDDER,
    DatabaseInput,
    Plugins,
)
from ..plugins.manager import PluginManager
from ..slugs import SlugManager
from .documents import DocumentStage, resolve_cover
from .embeddings import embed_documents, embed_media
from .links import resolve_links
from .media import MediaIndex, MediaStage
from .output import OutputFiles, OutputWriter, build_graph
from .records import DocumentDraft, MediaDraft, ProcessStats
from .reconciler import Reconciler, VaultFile

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation, checked between per-file work items."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ProcessResult:
    documents: list[ProcessedDocument]
    media: list[ProcessedMedia]
    issues: IssueReport
    stats: ProcessStats
    output_dir: Path
    output_files: dict[str, Path] = field(default_factory=dict)
    similarity: SimilarityResult | None = None
    database: DatabaseResult | None = None
    graph: dict[str, Any] | None = None
    cancelled: bool = False

    @property
    def slug_map(self) -> dict[str, str]:
        return {d.slug: d.hash for d in self.documents}

    @property
    def path_map(self) -> dict[str, str]:
        return {d.original_path: d.hash for d in self.documents}


class _Cancelled(Exception):
    pass


class Processor:
    """Owns one set of plugins for its lifetime.

    Usage::

        with Processor(cfg, plugins, cache) as processor:
            result = processor.process()
    """

    def __init__(
        self,
        cfg: ProcessorConfig,
        plugins: Plugins | None = None,
        cache: CacheContext | None = None,
    ) -> None:
        self.cfg = cfg
        self.plugins = plugins or Plugins()
        self.cache = cache or CacheContext()
        self.issues = IssueCollector()
        self.manager = PluginManager(
            self.plugins,
            self.issues,
            cfg.output_dir,
            config=cfg,
            required=cfg.required_plugins,
        )
        self.pipeline = MarkdownPipeline()
        self._initialized = False

    def __enter__(self) -> "Processor":
        self.initialize()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.dispose()

    def initialize(self) -> None:
        if self._initialized:
            return
        self.manager.initialize()
        self._initialized = True
        logger.info(f"Processor initialized with plugins: {self.manager.initialized or 'none'}")

    def dispose(self) -> None:
        """Dispose plugins in reverse order.

        Runs after the last report was written, so dispose failures reach the
        log (as plugin-error records) but not processor-issues.json.
        """
        if self._initialized:
            self.manager.dispose()
            self._initialized = False

    # ------------------------------------------------------------------

    def process(self, cancel: CancellationToken | None = None) -> ProcessResult:
        """Run all stages and write the output artifacts.

        Raises ConfigurationError when the input directory is unusable and
        ProcessingError when a required stage fails; every other problem is
        reported through the returned issue report.
        """
        if not self._initialized:
            self.initialize()
        token = cancel or CancellationToken()
        cfg = self.cfg

        # Fresh collector per run, seeded with plugin lifecycle issues
        issues = IssueCollector()
        issues.extend(self.issues.issues)
        self.manager.context.issues = issues

        run = _Run(cfg=cfg, issues=issues, stats=ProcessStats(), cache_stats=CacheStats())
        start = time.time()
        scan = Reconciler(cfg.input_dir, cfg.ignore_files, exclude_dirs=(cfg.output_dir,)).scan()
        run.stats.documents_scanned = len(scan.documents)
        run.stats.media_scanned = len(scan.media)
        logger.info(f"Found {len(scan.documents)} documents and {len(scan.media)} media files in {cfg.input_dir}")
        try:
            cfg.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create output directory {cfg.output_dir}: {e}") from e

        try:
            with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
                self._run_stages(run, scan.documents, scan.media, pool, token)
        except _Cancelled:
            run.cancelled = True
            issues.add_issue(IssueSeverity.WARNING, IssueCategory.OTHER, IssueModule.PROCESSOR,
                             "Processing cancelled; output is incomplete")
        except VaultPressError:
            self._write_report(run)
            raise
        except Exception as e:
            logger.exception("Processing failed")
            issues.add_issue(IssueSeverity.ERROR, IssueCategory.OTHER, IssueModule.PROCESSOR,
                             f"Processing failed: {type(e).__name__}: {e}")
            report = self._write_report(run)
            raise ProcessingError(f"Processing failed: {e}", report) from e

        run.stats.cache = run.cache_stats.to_dict()
        run.stats.elapsed_seconds = time.time() - start
        report = self._write_report(run)
        logger.info(f"Processing complete in {run.stats.elapsed_seconds:.2f}s: {issues.summary_string()}")
        return ProcessResult(
            documents=run.documents,
            media=run.media,
            issues=report,
            stats=run.stats,
            output_dir=cfg.output_dir,
            output_files=dict(run.writer.written),
            similarity=run.similarity,
            database=run.database,
            graph=run.graph,
            cancelled=run.cancelled,
        )

    def _run_stages(
        self,
        run: "_Run",
        documents: list[VaultFile],
        media: list[VaultFile],
        pool: ThreadPoolExecutor,
        token: CancellationToken,
    ) -> None:
        def checkpoint() -> None:
            if token.cancelled:
                raise _Cancelled()

        with self._stage(run, "media"):
            media_drafts = self._process_media(run, media, pool, token)
        checkpoint()
        media_index = MediaIndex(media_drafts, self.cfg.media.domain)
        run.media = [m.freeze() for m in media_drafts]

        with self._stage(run, "documents"):
            drafts = self._process_documents(run, documents, media_index, pool, token)
        checkpoint()

        with self._stage(run, "slugs"):
            self._assign_slugs(run, drafts, documents)
        with self._stage(run, "links"):
            resolve_links(drafts, media_index, self.pipeline, run.issues)
        checkpoint()

        with self._stage(run, "embeddings"):
            self._embed(run, drafts, media_drafts, pool, token)
        checkpoint()
        run.documents = [d.freeze() for d in drafts]
        run.media = [m.freeze() for m in media_drafts]
        run.stats.documents_included = len(run.documents)

        with self._stage(run, "similarity"):
            self._similarity(run)
        with self._stage(run, "database"):
            self._database(run)
        checkpoint()

        with self._stage(run, "output"):
            run.writer.write_results(run.documents, run.media)
            if run.similarity is not None:
                run.writer.write_json(OutputFiles.SIMILARITY, run.similarity.to_dict())
            if self.cfg.track_relationships:
                run.graph = build_graph(
                    run.documents, run.media, {d.hash: d.media_refs for d in drafts}
                )
                run.writer.write_json(OutputFiles.GRAPH, run.graph)

    @contextmanager
    def _stage(self, run: "_Run", name: str) -> Iterator[None]:
        start = time.time()
        try:
            yield
        finally:
            elapsed = time.time() - start
            run.stats.stage_seconds[name] = round(elapsed, 4)
            if self.cfg.debug.timing:
                logger.info(f"Stage {name} took {elapsed:.3f}s")

    # -- stages ---------------------------------------------------------

    def _process_media(
        self,
        run: "_Run",
        files: list[VaultFile],
        pool: ThreadPoolExecutor,
        token: CancellationToken,
    ) -> list[MediaDraft]:
        plugin = self.manager.get(IMAGE_PROCESSOR)
        if plugin is None:
            if files:
                logger.info(f"No image processor available; skipping {len(files)} media files")
            return []

        stage = MediaStage(self.cfg.media, self.cfg.output_dir, plugin, self.cache, run.cache_stats)
        outcomes = pool.map(lambda f: None if token.cancelled else stage.process_file(f), files)

        drafts: list[MediaDraft] = []
        for outcome in outcomes:
            if outcome is None:
                continue
            if outcome.error is not None:
                run.stats.media_failed += 1
                run.issues.add_media_processing_error(outcome.file.rel_path, outcome.operation, outcome.error)
                continue
            drafts.append(outcome.draft)
            if outcome.copied:
                run.stats.media_copied += 1
            else:
                run.stats.media_processed += 1
        return drafts

    def _process_documents(
        self,
        run: "_Run",
        files: list[VaultFile],
        media_index: MediaIndex,
        pool: ThreadPoolExecutor,
        token: CancellationToken,
    ) -> list[DocumentDraft]:
        stage = DocumentStage(self.pipeline, self.cfg.process_all_files, run.processed_at)
        outcomes = pool.map(lambda f: None if token.cancelled else stage.parse_file(f), files)

        drafts: list[DocumentDraft] = []
        for outcome in outcomes:
            if outcome is None:
                continue
            rel = outcome.file.rel_path
            if outcome.error is not None:
                run.stats.documents_failed += 1
                if outcome.error_kind == "file-access":
                    run.issues.add_file_access_error(rel, "read", outcome.error)
                else:
                    run.issues.add_parse_error(rel, outcome.error)
                continue
            if outcome.unpublished:
                run.stats.documents_skipped += 1
                continue

            draft = outcome.draft
            draft.cover = resolve_cover(draft.frontmatter, draft.folder, media_index)
            if isinstance(draft.cover, CoverError):
                run.issues.add_missing_media(rel, draft.cover.original, referenced_from="frontmatter")
            drafts.append(draft)
        return drafts

    def _assign_slugs(self, run: "_Run", drafts: list[DocumentDraft], files: list[VaultFile]) -> None:
        slugs = SlugManager(strategy=self.cfg.slug_conflict_strategy)
        siblings = Counter(f.rel_path.rsplit("/", 1)[0] if "/" in f.rel_path else "" for f in files)
        for draft in drafts:
            fm_slug = draft.frontmatter.get("slug")
            folder = draft.folder
            result = slugs.reserve(
                draft.original_path,
                file_name=draft.file_name,
                parent_folder=folder or None,
                frontmatter_slug=str(fm_slug) if fm_slug not in (None, "") else None,
                sibling_count=siblings[folder],
            )
            draft.slug = result.slug
            if result.was_modified:
                run.issues.add_slug_conflict(
                    draft.original_path, result.original_slug, result.slug, list(result.conflicting_paths)
                )

    def _embed(
        self,
        run: "_Run",
        drafts: list[DocumentDraft],
        media_drafts: list[MediaDraft],
        pool: ThreadPoolExecutor,
        token: CancellationToken,
    ) -> None:
        text_embedder = self.manager.get(TEXT_EMBEDDER)
        if text_embedder is not None and drafts:
            try:
                run.stats.text_embeddings_created = embed_documents(
                    drafts, text_embedder, self.cache, run.cache_stats, run.issues,
                    batch_size=self.cfg.embedding_batch_size,
                    cancelled=lambda: token.cancelled,
                )
            except Exception as e:
                for d in drafts:
                    d.embedding = None
                run.issues.add_embedding_error(str(e), IssueModule.TEXT_EMBEDDINGS, operation="batch_embed")

        image_embedder = self.manager.get(IMAGE_EMBEDDER)
        if image_embedder is not None and media_drafts:
            try:
                run.stats.image_embeddings_created = embed_media(
                    media_drafts, image_embedder, self.cfg.input_dir, self.cache, run.cache_stats,
                    run.issues, pool, cancelled=lambda: token.cancelled,
                )
            except Exception as e:
                for m in media_drafts:
                    m.embedding = None
                run.issues.add_embedding_error(str(e), IssueModule.IMAGE_EMBEDDINGS, operation="embed_file")

    def _similarity(self, run: "_Run") -> None:
        plugin = self.manager.get(SIMILARITY)
        if plugin is None:
            return
        try:
            run.similarity = plugin.generate_similarity_map(run.documents, self.cfg.similarity_top_n)
        except Exception as e:
            run.issues.add_issue(IssueSeverity.ERROR, IssueCategory.OTHER, IssueModule.SIMILARITY,
                                 f"Similarity computation failed: {e}", error=str(e))

    def _database(self, run: "_Run") -> None:
        plugin = self.manager.get(DATABASE)
        if plugin is None:
            return
        text_embedder = self.manager.get(TEXT_EMBEDDER)
        image_embedder = self.manager.get(IMAGE_EMBEDDER)
        try:
            run.database = plugin.build(DatabaseInput(
                documents=run.documents,
                media=run.media,
                output_dir=self.cfg.output_dir,
                similarity=run.similarity,
                text_model=getattr(text_embedder, "model", None),
                image_model=getattr(image_embedder, "model", None),
            ))
        except Exception as e:
            run.issues.add_database_error("build", str(e))
            return
        run.writer.written[Path(run.database.database_path).name] = Path(run.database.database_path)

    def _write_report(self, run: "_Run") -> IssueReport:
        if run.writer.write_json(OutputFiles.ISSUES, run.issues.generate_report().to_dict()) is None:
            logger.error(f"Could not write {OutputFiles.ISSUES}")
        return run.issues.generate_report()


@dataclass
class _Run:
    """Mutable state of one process() call."""

    cfg: ProcessorConfig
    issues: IssueCollector
    stats: ProcessStats
    cache_stats: CacheStats
    processed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    documents: list[ProcessedDocument] = field(default_factory=list)
    media: list[ProcessedMedia] = field(default_factory=list)
    similarity: SimilarityResult | None = None
    database: DatabaseResult | None = None
    graph: dict[str, Any] | None = None
    cancelled: bool = False
    writer: OutputWriter = field(init=False)

    def __post_init__(self) -> None:
        self.writer = OutputWriter(self.cfg.output_dir, self.issues)


def process_vault(
    cfg: ProcessorConfig,
    plugins: Plugins | None = None,
    cache: CacheContext | None = None,
    cancel: CancellationToken | None = None,
) -> ProcessResult:
    """Initialize, run and dispose a Processor in one call."""
    with Processor(cfg, plugins, cache) as processor:
        return processor.process(cancel)
