"""Plugin contracts and the typed set of capability slots.

Each capability is a `typing.Protocol`; implementations are plain classes
that do not need to inherit anything, although `PluginBase` covers the
common lifecycle bookkeeping.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Protocol, Sequence, runtime_checkable

import numpy as np

from ..issues import IssueCollector
from ..models import DatabaseResult, ProcessedDocument, ProcessedMedia, SimilarityResult

if TYPE_CHECKING:
    from ..config import ProcessorConfig

IMAGE_PROCESSOR = "image_processor"
IMAGE_EMBEDDER = "image_embedder"
TEXT_EMBEDDER = "text_embedder"
SIMILARITY = "similarity"
DATABASE = "database"


@dataclass
class PluginContext:
    """Environment shared with every plugin at initialization."""

    output_dir: Path
    logger: logging.Logger
    issues: IssueCollector
    config: "ProcessorConfig | None" = None
    lookup: Callable[[str], Any] | None = None

    def get_plugin(self, capability: str) -> Any:
        """Another initialized, ready plugin by capability name, or None."""
        return self.lookup(capability) if self.lookup else None


@runtime_checkable
class Plugin(Protocol):
    name: str
    requires: tuple[str, ...]

    def initialize(self, context: PluginContext) -> None: ...
    def is_ready(self) -> bool: ...


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: str


@dataclass(frozen=True)
class ImageProcessOptions:
    width: int | None = None
    height: int | None = None
    format: str = "webp"
    quality: int = 80


@dataclass(frozen=True)
class ImageProcessResult:
    output_path: Path
    width: int
    height: int
    format: str
    size: int


class ImageProcessorPlugin(Plugin, Protocol):
    def can_process(self, path: Path) -> bool: ...
    def get_metadata(self, path: Path) -> ImageMetadata: ...
    def process(self, input_path: Path, output_path: Path, options: ImageProcessOptions) -> ImageProcessResult: ...
    def copy(self, input_path: Path, output_path: Path) -> None: ...


class TextEmbeddingPlugin(Plugin, Protocol):
    model: str
    dimensions: int

    def embed(self, text: str) -> np.ndarray: ...
    def batch_embed(self, texts: Sequence[str]) -> np.ndarray: ...


class ImageEmbeddingPlugin(Plugin, Protocol):
    model: str
    dimensions: int

    def embed_file(self, path: Path) -> np.ndarray: ...
    def embed_bytes(self, data: bytes) -> np.ndarray: ...


class SimilarityPlugin(Plugin, Protocol):
    def compute_similarity(self, a: Sequence[float], b: Sequence[float]) -> float: ...
    def generate_similarity_map(
        self, documents: Sequence[ProcessedDocument], top_n: int = 5
    ) -> SimilarityResult: ...


@dataclass(frozen=True)
class DatabaseInput:
    documents: Sequence[ProcessedDocument]
    media: Sequence[ProcessedMedia]
    output_dir: Path
    similarity: SimilarityResult | None = None
    text_model: str | None = None
    image_model: str | None = None


class DatabasePlugin(Plugin, Protocol):
    def build(self, data: DatabaseInput) -> DatabaseResult: ...


@dataclass
class Plugins:
    """One optional slot per capability; None means the capability is absent."""

    image_processor: ImageProcessorPlugin | None = None
    image_embedder: ImageEmbeddingPlugin | None = None
    text_embedder: TextEmbeddingPlugin | None = None
    similarity: SimilarityPlugin | None = None
    database: DatabasePlugin | None = None

    def items(self) -> Iterator[tuple[str, Any]]:
        for f in fields(self):
            plugin = getattr(self, f.name)
            if plugin is not None:
                yield f.name, plugin


class PluginBase:
    """Lifecycle bookkeeping shared by the bundled plugins."""

    name: str = "plugin"
    requires: tuple[str, ...] = ()

    def __init__(self) -> None:
        self.context: PluginContext | None = None
        self._ready = False

    @property
    def logger(self) -> logging.Logger:
        if self.context is not None:
            return self.context.logger.getChild(self.name)
        return logging.getLogger(f"vaultpress.plugins.{self.name}")

    def initialize(self, context: PluginContext) -> None:
        self.context = context
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def dispose(self) -> None:
        self._ready = False
        self.context = None
