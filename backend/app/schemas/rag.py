"""Pydantic schemas for retrieval, similarity and analysis payloads.

Classes:
    EmbeddingType, AnalysisType: Enumerations of supported embedding and analysis kinds.
    SimilarityResult: A ranked neighbour with best-effort enrichment fields.
    AnalysisRequest, AnalysisContext: Input to and context bundle of a person analysis.
    RAGSearchResult, SearchMetadata: Result of a free-text similarity search.
    BatchEmbeddingSummary, BatchFailure: Outcome of batch embedding generation.
    EmbeddingStats, RAGStats, CostSummary: Observability aggregates.
    HealthStatus: Readiness of the provider, store and analysis tool.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .person import CamelModel, PersonProfile


class EmbeddingType(str, Enum):
    PROFILE = "profile"
    SKILLS = "skills"
    TECHNOLOGIES = "technologies"


class AnalysisType(str, Enum):
    CAPABILITY_ANALYSIS = "capability_analysis"
    SKILL_GAP = "skill_gap"
    CAREER_RECOMMENDATION = "career_recommendation"
    GENERAL = "general"


class SimilarityResult(CamelModel):
    person_id: UUID
    similarity: float
    name: str = "Unknown"
    email: str = ""
    skills: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)


class AnalysisRequest(BaseModel):
    person_id: UUID
    analysis_type: AnalysisType = AnalysisType.GENERAL
    include_similar_persons: bool = True
    include_skills_context: bool = False
    similar_top_n: Optional[int] = Field(default=None, ge=1)
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class AnalysisContext(CamelModel):
    person: PersonProfile
    similar_persons: list[SimilarityResult] = Field(default_factory=list)
    skills_context: Optional[str] = None


class SearchMetadata(BaseModel):
    query_tokens: int
    search_time_ms: float


class RAGSearchResult(BaseModel):
    persons: list[SimilarityResult]
    query: str
    metadata: SearchMetadata


class BatchFailure(BaseModel):
    person_id: UUID
    error: str


class BatchEmbeddingSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[BatchFailure] = Field(default_factory=list)


class EmbeddingStats(BaseModel):
    total_embeddings: int
    embeddings_by_type: dict[str, int]
    total_cost: float
    total_searches: int
    average_search_time_ms: float
    total_search_cost: float


class CostSummary(BaseModel):
    embeddings: float
    searches: float
    total: float


class RAGStats(BaseModel):
    embeddings: EmbeddingStats
    costs: CostSummary


class HealthStatus(BaseModel):
    status: str
    services: dict[str, Any]
