"""vaultpress: turns a Markdown vault into cacheable build artifacts.

Documents are parsed and slugged, media are transcoded into hash-named
variants, optional plugins add embeddings, similarity and a SQLite database,
and every recoverable problem lands in an issue report.

Public API:
- ProcessorConfig
- Processor / process_vault
- Plugins
- CacheContext / load_cache_from_output
"""

from .cache import CacheContext, load_cache_from_output
from .config import ProcessorConfig
from .plugins.base import Plugins
from .processor.processor import CancellationToken, ProcessResult, Processor, process_vault

__all__ = [
    "CacheContext",
    "CancellationToken",
    "ProcessResult",
    "Processor",
    "ProcessorConfig",
    "Plugins",
    "load_cache_from_output",
    "process_vault",
]
