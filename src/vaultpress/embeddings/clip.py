from __future__ import annotations

import io
import threading
from pathlib import Path

import numpy as np

from ..plugins.base import PluginBase, PluginContext


class ClipImageEmbedder(PluginBase):
    """Image embeddings from a CLIP model loaded through sentence-transformers."""

    name = "clip"

    def __init__(self, model_id: str = "clip-ViT-B-32", device: str = "cpu") -> None:
        super().__init__()
        self.model = model_id
        self.device = device
        self.dimensions = 0
        self._model = None
        self._lock = threading.Lock()

    def initialize(self, context: PluginContext) -> None:
        try:
            from PIL import Image  # noqa: F401
        except ImportError as e:
            raise RuntimeError("Pillow not installed. Install with: pip install Pillow") from e
        from sentence_transformers import SentenceTransformer  # type: ignore

        self._model = SentenceTransformer(self.model, device=self.device)
        dims = self._model.get_sentence_embedding_dimension()
        if not dims:
            v = self._model.encode(["dimension_probe"], convert_to_numpy=True, normalize_embeddings=True)
            dims = int(v.shape[1])
        self.dimensions = int(dims)
        super().initialize(context)
        self.logger.info(f"Loaded {self.model} ({self.dimensions} dims)")

    def is_ready(self) -> bool:
        return super().is_ready() and self._model is not None and self.dimensions > 0

    def _encode(self, image) -> np.ndarray:
        if self._model is None:
            raise RuntimeError("Image embedder used before initialize()")
        with self._lock:
            return self._model.encode([image], convert_to_numpy=True, normalize_embeddings=True)[0]

    def embed_file(self, path: Path) -> np.ndarray:
        from PIL import Image

        with Image.open(path) as img:
            return self._encode(img.convert("RGB"))

    def embed_bytes(self, data: bytes) -> np.ndarray:
        from PIL import Image

        with Image.open(io.BytesIO(data)) as img:
            return self._encode(img.convert("RGB"))

    def dispose(self) -> None:
        self._model = None
        super().dispose()
