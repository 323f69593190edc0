"""Convenience exports for ORM models.

Surface the SQLModel tables so calling code can import them from a single module.
"""

from .person_embedding import PersonEmbedding
from .similarity_search import SimilaritySearch

__all__ = [
    "PersonEmbedding",
    "SimilaritySearch",
]
