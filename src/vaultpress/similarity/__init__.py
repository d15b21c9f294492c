from .cosine import CosineSimilarity, cosine_similarity, rank_neighbours, similarity_matrix

__all__ = ["CosineSimilarity", "cosine_similarity", "rank_neighbours", "similarity_matrix"]
