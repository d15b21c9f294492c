from __future__ import annotations

import threading
from typing import Sequence

import numpy as np

from ..plugins.base import PluginBase, PluginContext


class SentenceTransformersTextEmbedder(PluginBase):
    """Text embeddings from a sentence-transformers model.

    The model handle is shared by all callers; encode() calls are serialized.
    """

    name = "sentence-transformers"

    def __init__(self, model_id: str = "sentence-transformers/all-MiniLM-L6-v2",
                 device: str = "cpu", batch_size: int = 32) -> None:
        super().__init__()
        self.model = model_id
        self.device = device
        self.batch_size = batch_size
        self.dimensions = 0
        self._model = None
        self._lock = threading.Lock()

    def initialize(self, context: PluginContext) -> None:
        # Suppress harmless multiprocessing resource tracker warnings on macOS
        import warnings
        warnings.filterwarnings("ignore", message="resource_tracker: There appear to be.*leaked semaphore")

        from sentence_transformers import SentenceTransformer  # type: ignore
        self._model = SentenceTransformer(self.model, device=self.device)
        # Determine dims from a small encode
        v = self._model.encode(["dimension_probe"], batch_size=1, convert_to_numpy=True, normalize_embeddings=True)
        self.dimensions = int(v.shape[1])
        super().initialize(context)
        self.logger.info(f"Loaded {self.model} ({self.dimensions} dims)")

    def is_ready(self) -> bool:
        return super().is_ready() and self._model is not None and self.dimensions > 0

    def embed(self, text: str) -> np.ndarray:
        return self.batch_embed([text])[0]

    def batch_embed(self, texts: Sequence[str]) -> np.ndarray:
        if self._model is None:
            raise RuntimeError("Text embedder used before initialize()")
        with self._lock:
            return self._model.encode(list(texts), batch_size=self.batch_size,
                                      convert_to_numpy=True, normalize_embeddings=True)

    def dispose(self) -> None:
        self._model = None
        super().dispose()
