"""Convenience exports for schemas.

Re-exports the pydantic models used across the backend so consumers can import from one module.
"""

from .person import Education, PersonProfile, PersonSkill, PersonTechnology
from .rag import (
    AnalysisContext,
    AnalysisRequest,
    AnalysisType,
    BatchEmbeddingSummary,
    BatchFailure,
    CostSummary,
    EmbeddingStats,
    EmbeddingType,
    HealthStatus,
    RAGSearchResult,
    RAGStats,
    SearchMetadata,
    SimilarityResult,
)

__all__ = [
    "Education",
    "PersonProfile",
    "PersonSkill",
    "PersonTechnology",
    "AnalysisContext",
    "AnalysisRequest",
    "AnalysisType",
    "BatchEmbeddingSummary",
    "BatchFailure",
    "CostSummary",
    "EmbeddingStats",
    "EmbeddingType",
    "HealthStatus",
    "RAGSearchResult",
    "RAGStats",
    "SearchMetadata",
    "SimilarityResult",
]
