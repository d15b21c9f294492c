from .clip import ClipImageEmbedder
from .sentence_transformers import SentenceTransformersTextEmbedder

__all__ = ["ClipImageEmbedder", "SentenceTransformersTextEmbedder"]
