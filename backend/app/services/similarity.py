"""Similarity search over cached person embeddings.

Classes:
    SimilarityFinder: Threshold / limit / self-exclusion on top of EmbeddingStore.nearest_neighbors.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence
from uuid import UUID

import numpy as np

from app.services.embedding_store import EmbeddingStore
from app.services.openai_client import TokenUsage
from app.schemas import SimilarityResult

_LOGGER = logging.getLogger(__name__)


class SimilarityFinder:
    def __init__(self, store: EmbeddingStore, *, model: str = "text-embedding-3-small") -> None:
        self._store = store
        self._model = model

    async def find_similar(
        self,
        query_vector: Sequence[float] | np.ndarray,
        embedding_type: str = "profile",
        limit: int = 10,
        threshold: float = 0.7,
        exclude_person_id: Optional[UUID] = None,
        *,
        query_text: Optional[str] = None,
        usage: Optional[TokenUsage] = None,
    ) -> list[SimilarityResult]:
        """Return up to *limit* people whose similarity to *query_vector* is at least *threshold*.

        Never raises: a store failure is logged and yields an empty list.
        """

        if limit <= 0:
            return []

        # One extra candidate so dropping the excluded person still leaves `limit` results.
        fetch_limit = limit + 1 if exclude_person_id is not None else limit
        started = time.perf_counter()
        try:
            candidates = await self._store.nearest_neighbors(
                query_vector,
                embedding_type=embedding_type,
                limit=fetch_limit,
                similarity_threshold=threshold,
            )
        except Exception:
            _LOGGER.warning(
                "Similarity search failed (type=%s, exclude=%s); returning no results",
                embedding_type,
                exclude_person_id,
                exc_info=True,
            )
            return []

        results = [item for item in candidates if item.person_id != exclude_person_id][:limit]
        execution_time_ms = (time.perf_counter() - started) * 1000.0

        try:
            await self._store.record_search(
                query_vector=query_vector,
                embedding_type=embedding_type,
                model=self._model,
                results=results,
                limit=limit,
                similarity_threshold=threshold,
                execution_time_ms=execution_time_ms,
                query_text=query_text,
                tokens_used=usage.total_tokens if usage else None,
                cost=usage.cost if usage else None,
            )
        except Exception:
            _LOGGER.warning("Search analytics write failed", exc_info=True)
        return results
