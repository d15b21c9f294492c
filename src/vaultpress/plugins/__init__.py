from .base import (
    DATABASE,
    IMAGE_EMBEDDER,
    IMAGE_PROCESSOR,
    SIMILARITY,
    TEXT_EMBEDDER,
    DatabaseInput,
    ImageMetadata,
    ImageProcessOptions,
    ImageProcessResult,
    PluginBase,
    PluginContext,
    Plugins,
)
from .manager import PluginManager, topological_sort

__all__ = [
    "DATABASE",
    "IMAGE_EMBEDDER",
    "IMAGE_PROCESSOR",
    "SIMILARITY",
    "TEXT_EMBEDDER",
    "DatabaseInput",
    "ImageMetadata",
    "ImageProcessOptions",
    "ImageProcessResult",
    "PluginBase",
    "PluginContext",
    "PluginManager",
    "Plugins",
    "topological_sort",
]
