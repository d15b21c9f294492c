"""Tests for cosine similarity scoring and neighbour ranking."""
from __future__ import annotations

import numpy as np
import pytest
from conftest import make_document

from vaultpress.similarity import CosineSimilarity, cosine_similarity, rank_neighbours, similarity_matrix


class TestCosineSimilarity:
    """Pairwise score properties."""

    def test_identical_vectors(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_opposite_and_orthogonal(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_symmetric_and_bounded(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            a, b = rng.normal(size=16), rng.normal(size=16)
            s = cosine_similarity(a, b)
            assert s == cosine_similarity(b, a)
            assert -1.0 <= s <= 1.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 2], [1, 2, 3])


class TestMatrixAndRanking:
    """Matrix helpers shared with the database builder."""

    def test_matrix_is_symmetric_with_zero_rows(self):
        m = similarity_matrix(np.array([[1.0, 0.0], [0.0, 0.0], [0.6, 0.8]]))
        assert np.array_equal(m, m.T)
        assert m[1, 0] == 0.0 and m[1, 2] == 0.0
        assert m[0, 2] == pytest.approx(0.6)

    def test_ties_keep_input_order(self):
        scores = np.array([
            [1.0, 0.5, 0.5, 0.5],
            [0.5, 1.0, 0.1, 0.1],
            [0.5, 0.1, 1.0, 0.1],
            [0.5, 0.1, 0.1, 1.0],
        ])
        assert rank_neighbours(scores, 0, 2) == [1, 2]
        assert rank_neighbours(scores, 3, 3) == [0, 1, 2]


class TestSimilarityPlugin:
    """generate_similarity_map over processed documents."""

    def test_map_structure(self):
        docs = [
            make_document("h1", "alpha", embedding=[1.0, 0.0]),
            make_document("h2", "beta", embedding=[0.9, 0.1]),
            make_document("h3", "gamma", embedding=[0.0, 1.0]),
            make_document("h4", "delta"),
        ]
        result = CosineSimilarity().generate_similarity_map(docs, top_n=1)

        assert set(result.pairwise_scores) == {"h1-h2", "h1-h3", "h2-h3"}
        assert result.score("h2", "h1") == result.score("h1", "h2")
        assert result.similar_documents == {"h1": ["h2"], "h2": ["h1"], "h3": ["h2"]}
        assert "h4" not in result.similar_documents
        assert result.metadata["documentCount"] == 3

    def test_duplicate_hashes_counted_once(self):
        docs = [
            make_document("h1", "alpha", embedding=[1.0, 0.0]),
            make_document("h1", "alpha-2", embedding=[1.0, 0.0]),
            make_document("h2", "beta", embedding=[0.0, 1.0]),
        ]
        result = CosineSimilarity().generate_similarity_map(docs)
        assert list(result.pairwise_scores) == ["h1-h2"]
        assert result.similar_documents["h1"] == ["h2"]

    def test_no_embeddings(self):
        result = CosineSimilarity().generate_similarity_map([make_document("h1")])
        assert result.pairwise_scores == {}
        assert result.similar_documents == {}

    def test_requires_text_embedder(self):
        assert CosineSimilarity.requires == ("text_embedder",)
