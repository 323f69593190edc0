"""Service layer exports.

Expose the provider, store, similarity and retrieval services for easy importing.
"""

from .openai_client import OpenAIService
from .embedding_store import EmbeddingStore
from .similarity import SimilarityFinder
from .analysis_client import AnalysisToolClient
from .person_directory import HttpPersonDirectory, PersonDirectory
from .rag import RAGService

__all__ = [
    "OpenAIService",
    "EmbeddingStore",
    "SimilarityFinder",
    "AnalysisToolClient",
    "HttpPersonDirectory",
    "PersonDirectory",
    "RAGService",
]
