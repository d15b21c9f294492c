from __future__ import annotations

import logging

from ..config import ProcessorConfig
from ..errors import ConfigurationError
from .base import Plugins

logger = logging.getLogger(__name__)


def build_plugins(cfg: ProcessorConfig) -> Plugins:
    """Instantiate plugins from the provider names in `cfg.plugins`.

    Heavy backends are imported lazily by the plugins themselves.
    """
    from ..embeddings.clip import ClipImageEmbedder
    from ..embeddings.sentence_transformers import SentenceTransformersTextEmbedder
    from ..media.copy_processor import CopyOnlyImageProcessor
    from ..media.pillow_processor import PillowImageProcessor
    from ..similarity.cosine import CosineSimilarity
    from ..store.sqlite_database import SqliteDatabase

    s = cfg.plugins
    plugins = Plugins()

    if s.image_processor == "pillow":
        plugins.image_processor = PillowImageProcessor()
    elif s.image_processor == "copy":
        plugins.image_processor = CopyOnlyImageProcessor()
    elif s.image_processor != "off":
        raise ConfigurationError(f"Unknown image processor: {s.image_processor}")

    if s.text_embedder == "sentence_transformers":
        plugins.text_embedder = SentenceTransformersTextEmbedder(
            model_id=s.text_model,
            device=s.embedding_device,
            batch_size=cfg.embedding_batch_size,
        )
    elif s.text_embedder != "off":
        raise ConfigurationError(f"Unknown text embedding provider: {s.text_embedder}")

    if s.image_embedder == "clip":
        plugins.image_embedder = ClipImageEmbedder(model_id=s.image_model, device=s.embedding_device)
    elif s.image_embedder != "off":
        raise ConfigurationError(f"Unknown image embedding provider: {s.image_embedder}")

    if s.similarity == "cosine":
        if plugins.text_embedder is None:
            logger.info("Similarity disabled: no text embedder configured")
        else:
            plugins.similarity = CosineSimilarity()
    elif s.similarity != "off":
        raise ConfigurationError(f"Unknown similarity provider: {s.similarity}")

    if s.database == "sqlite":
        plugins.database = SqliteDatabase(
            file_name=cfg.database_name,
            fts=cfg.database_fts,
            vector_search=cfg.database_vector_search,
            top_n=cfg.similarity_top_n,
        )
    elif s.database != "off":
        raise ConfigurationError(f"Unknown database provider: {s.database}")

    return plugins
