"""Retrieval-augmented analysis of person profiles.

Classes:
    RAGService: Ensures cached profile embeddings, gathers similar people and skills context,
        and forwards the assembled context to the external analysis tool.

Failure policy: a missing person, embedding generation and the analysis call are fatal;
similarity search, skills context and result enrichment degrade to empty or partial data.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import numpy as np

from app.core.config import Settings, get_settings
from app.core.errors import AnalysisError, NotFoundError, ProviderError, RAGError
from app.models import PersonEmbedding
from app.schemas import (
    AnalysisContext,
    AnalysisRequest,
    BatchEmbeddingSummary,
    BatchFailure,
    CostSummary,
    EmbeddingType,
    HealthStatus,
    PersonProfile,
    RAGSearchResult,
    RAGStats,
    SearchMetadata,
    SimilarityResult,
)
from app.services.analysis_client import AnalysisToolClient
from app.services.embedding_store import EmbeddingStore
from app.services.openai_client import OpenAIService
from app.services.person_directory import PersonDirectory
from app.services.similarity import SimilarityFinder
from app.utils.text import build_person_text

_LOGGER = logging.getLogger(__name__)

NO_SKILLS_CONTEXT = "No skills or technologies found for market context analysis."


class RAGService:
    def __init__(
        self,
        *,
        openai_service: OpenAIService,
        store: EmbeddingStore,
        finder: SimilarityFinder,
        analysis_client: AnalysisToolClient,
        directory: PersonDirectory,
        settings: Optional[Settings] = None,
    ) -> None:
        self._openai = openai_service
        self._store = store
        self._finder = finder
        self._analysis = analysis_client
        self._directory = directory
        self._settings = settings or get_settings()

    async def analyze_person(self, request: AnalysisRequest) -> str:
        analysis_type = request.analysis_type.value
        person = await self._get_person(request.person_id, operation=analysis_type)

        embedding = await self.ensure_embedding(person)

        similar_persons: list[SimilarityResult] = []
        if request.include_similar_persons:
            similar_persons = await self.find_similar_persons_for_analysis(
                embedding,
                person.id,
                top_n=request.similar_top_n,
                threshold=request.similarity_threshold,
            )

        skills_context: Optional[str] = None
        if request.include_skills_context:
            skills_context = self.build_skills_context(person)

        context = AnalysisContext(
            person=person,
            similar_persons=similar_persons,
            skills_context=skills_context,
        )
        payload = json.dumps(context.model_dump(mode="json", by_alias=True))

        try:
            result = await self._analysis.analyze_data(payload, analysis_type)
        except AnalysisError as exc:
            _LOGGER.error("Analysis failed for person %s (%s): %s", person.id, analysis_type, exc.message)
            raise AnalysisError(
                f"Analysis failed: {exc.message}", entity_id=person.id, operation=analysis_type
            ) from exc
        except Exception as exc:
            _LOGGER.exception("Analysis failed for person %s (%s)", person.id, analysis_type)
            raise AnalysisError(f"Analysis failed: {exc}", entity_id=person.id, operation=analysis_type) from exc

        _LOGGER.info(
            "Analysis %s completed for person %s with %d similar people",
            analysis_type,
            person.id,
            len(similar_persons),
        )
        return result.result_text

    async def ensure_embedding(
        self,
        person: PersonProfile,
        embedding_type: str = EmbeddingType.PROFILE.value,
    ) -> np.ndarray:
        """Return the cached embedding for *person*, generating and storing it on a miss."""

        existing = await self._lookup(person.id, embedding_type)
        if existing is not None:
            vector = self._store.decode_vector(existing)
            if vector is not None:
                return vector
            _LOGGER.warning("Stored %s embedding for person %s is unreadable; regenerating", embedding_type, person.id)

        record = await self._generate_and_store(person, embedding_type)
        return self._store.decode_vector(record)

    async def refresh_embedding(
        self,
        person_id: UUID,
        embedding_type: str = EmbeddingType.PROFILE.value,
    ) -> PersonEmbedding:
        """Regenerate the embedding for *person_id* and replace the cached record in place."""

        person = await self._get_person(person_id, operation="refresh_embedding")
        return await self._generate_and_store(person, embedding_type)

    async def generate_person_embedding(
        self,
        person_id: UUID,
        embedding_type: str = EmbeddingType.PROFILE.value,
    ) -> np.ndarray:
        person = await self._get_person(person_id, operation="generate_person_embedding")
        return await self.ensure_embedding(person, embedding_type)

    async def delete_person_embeddings(self, person_id: UUID) -> int:
        removed = await self._store.delete_for_person(person_id)
        _LOGGER.info("Removed %d embeddings for person %s", removed, person_id)
        return removed

    async def generate_all_embeddings(
        self,
        embedding_type: str = EmbeddingType.PROFILE.value,
    ) -> BatchEmbeddingSummary:
        people = await self._directory.list_people()
        semaphore = asyncio.Semaphore(max(1, self._settings.batch_concurrency))

        async def _process(person: PersonProfile) -> Optional[BatchFailure]:
            async with semaphore:
                try:
                    await self.ensure_embedding(person, embedding_type)
                except Exception as exc:
                    _LOGGER.error("Failed to generate embedding for person %s: %s", person.id, exc)
                    return BatchFailure(person_id=person.id, error=str(exc))
            return None

        outcomes = await asyncio.gather(*(_process(person) for person in people))
        failures = [outcome for outcome in outcomes if outcome is not None]
        summary = BatchEmbeddingSummary(
            total=len(people),
            succeeded=len(people) - len(failures),
            failed=len(failures),
            failures=failures,
        )
        _LOGGER.info(
            "Batch embedding generation finished: %d succeeded, %d failed of %d",
            summary.succeeded,
            summary.failed,
            summary.total,
        )
        return summary

    async def find_similar_persons_for_analysis(
        self,
        embedding: np.ndarray,
        person_id: UUID,
        *,
        top_n: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> list[SimilarityResult]:
        return await self._finder.find_similar(
            embedding,
            embedding_type=EmbeddingType.PROFILE.value,
            limit=top_n if top_n is not None else self._settings.similar_persons_top_n,
            threshold=threshold if threshold is not None else self._settings.similarity_threshold,
            exclude_person_id=person_id,
        )

    def build_skills_context(self, person: PersonProfile) -> str:
        names = [name for name in (*person.skill_names, *person.technology_names) if name and name.strip()]
        if not names:
            return NO_SKILLS_CONTEXT
        skill_list = ", ".join(names)
        return (
            f"Market Context: This professional has expertise in {skill_list}. "
            "These skills are in high demand in the current market, particularly in software development, "
            "data science, and technology consulting roles."
        )

    async def find_similar_by_text(
        self,
        query_text: str,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> RAGSearchResult:
        started = time.perf_counter()
        try:
            query_embedding = await self._openai.generate_embedding(query_text)
        except ProviderError as exc:
            raise exc.with_context(operation="find_similar_by_text") from exc

        hits = await self._finder.find_similar(
            query_embedding.vector,
            embedding_type=EmbeddingType.PROFILE.value,
            limit=limit if limit is not None else self._settings.search_default_limit,
            threshold=threshold if threshold is not None else self._settings.similarity_threshold,
            query_text=query_text,
            usage=query_embedding.usage,
        )
        persons = await self._enrich_results(hits)

        return RAGSearchResult(
            persons=persons,
            query=query_text,
            metadata=SearchMetadata(
                query_tokens=query_embedding.usage.total_tokens,
                search_time_ms=(time.perf_counter() - started) * 1000.0,
            ),
        )

    async def get_stats(self) -> RAGStats:
        embeddings = await self._store.stats()
        return RAGStats(
            embeddings=embeddings,
            costs=CostSummary(
                embeddings=embeddings.total_cost,
                searches=embeddings.total_search_cost,
                total=round(embeddings.total_cost + embeddings.total_search_cost, 8),
            ),
        )

    async def health_check(self) -> HealthStatus:
        services: dict[str, Any] = {"openai": "configured" if self._openai.is_configured else "not_configured"}
        healthy = self._openai.is_configured

        try:
            stats = await self._store.stats()
            services["vector_store"] = "connected"
            services["embeddings"] = stats.total_embeddings
        except RAGError as exc:
            _LOGGER.warning("Embedding store health check failed: %s", exc)
            services["vector_store"] = "unavailable"
            healthy = False

        analysis_ok = await self._analysis.is_healthy()
        services["analysis_tool"] = "connected" if analysis_ok else "unavailable"
        healthy = healthy and analysis_ok

        return HealthStatus(status="healthy" if healthy else "degraded", services=services)

    async def _get_person(self, person_id: UUID, *, operation: str) -> PersonProfile:
        person = await self._directory.fetch_person_with_relations(person_id)
        if person is None:
            raise NotFoundError("Person not found", entity_id=person_id, operation=operation)
        return person

    async def _lookup(self, person_id: UUID, embedding_type: str) -> Optional[PersonEmbedding]:
        try:
            return await self._store.get(person_id, embedding_type)
        except RAGError as exc:
            raise exc.with_context(entity_id=person_id, operation="ensure_embedding") from exc

    async def _generate_and_store(self, person: PersonProfile, embedding_type: str) -> PersonEmbedding:
        source_text = build_person_text(person, embedding_type)
        try:
            result = await self._openai.generate_embedding(source_text)
        except ProviderError as exc:
            _LOGGER.error("Embedding generation failed for person %s: %s", person.id, exc.message)
            raise exc.with_context(entity_id=person.id, operation="ensure_embedding") from exc

        try:
            return await self._store.upsert(
                person.id,
                embedding_type,
                result.vector,
                source_text,
                result.model,
                _metadata_snapshot(person),
                tokens_used=result.usage.total_tokens,
                cost=result.usage.cost,
            )
        except RAGError as exc:
            raise exc.with_context(entity_id=person.id, operation="ensure_embedding") from exc

    async def _enrich_results(self, results: list[SimilarityResult]) -> list[SimilarityResult]:
        async def _enrich(result: SimilarityResult) -> SimilarityResult:
            try:
                person = await self._directory.fetch_person_with_relations(result.person_id)
            except Exception:
                _LOGGER.warning("Could not enrich similarity result for person %s", result.person_id, exc_info=True)
                return result
            if person is None:
                return result
            return result.model_copy(
                update={
                    "name": person.name,
                    "email": person.email,
                    "skills": person.skill_names,
                    "technologies": person.technology_names,
                }
            )

        return list(await asyncio.gather(*(_enrich(result) for result in results)))


def _metadata_snapshot(person: PersonProfile) -> dict[str, Any]:
    return {
        "person_name": person.name,
        "email": person.email,
        "skills_count": len(person.skills),
        "technologies_count": len(person.technologies),
        "education_count": len(person.education),
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }
