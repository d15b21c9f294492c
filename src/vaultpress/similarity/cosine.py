from __future__ import annotations

from typing import Sequence

import numpy as np

from ..models import ProcessedDocument, SimilarityResult
from ..plugins.base import TEXT_EMBEDDER, PluginBase


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), 0.0 when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape[0]} != {vb.shape[0]}")
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (na * nb), -1.0, 1.0))


def similarity_matrix(vectors: np.ndarray) -> np.ndarray:
    """Symmetric cosine matrix; rows with zero norm score 0 against everything."""
    m = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(m, axis=1)
    safe = np.where(norms == 0.0, 1.0, norms)
    unit = m / safe[:, None]
    unit[norms == 0.0] = 0.0
    sims = np.clip(unit @ unit.T, -1.0, 1.0)
    # Enforce exact symmetry against floating point drift
    return (sims + sims.T) / 2.0


def rank_neighbours(scores: np.ndarray, index: int, top_n: int) -> list[int]:
    """Indices of the top-N scores for row `index`, excluding itself.

    Ties keep input order (stable sort).
    """
    candidates = [j for j in range(scores.shape[0]) if j != index]
    candidates.sort(key=lambda j: -scores[index, j])
    return candidates[:top_n]


class CosineSimilarity(PluginBase):
    name = "cosine-similarity"
    requires = (TEXT_EMBEDDER,)

    def compute_similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def generate_similarity_map(
        self, documents: Sequence[ProcessedDocument], top_n: int = 5
    ) -> SimilarityResult:
        seen: set[str] = set()
        hashes: list[str] = []
        vectors: list[Sequence[float]] = []
        for doc in documents:
            if doc.embedding is None or doc.hash in seen:
                continue
            seen.add(doc.hash)
            hashes.append(doc.hash)
            vectors.append(doc.embedding)

        pairwise: dict[str, float] = {}
        similar: dict[str, list[str]] = {}
        if hashes:
            scores = similarity_matrix(np.vstack([np.asarray(v, dtype=np.float64) for v in vectors]))
            for i, h in enumerate(hashes):
                for j in range(i + 1, len(hashes)):
                    pairwise[f"{h}-{hashes[j]}"] = round(float(scores[i, j]), 6)
                similar[h] = [hashes[j] for j in rank_neighbours(scores, i, top_n)]

        return SimilarityResult(
            pairwise_scores=pairwise,
            similar_documents=similar,
            metadata={
                "algorithm": "cosine",
                "documentCount": len(hashes),
                "pairCount": len(pairwise),
                "topN": top_n,
            },
        )
