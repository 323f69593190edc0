"""Persistent embedding cache with nearest-neighbour search.

Classes:
    EmbeddingStore: Upsert, lookup, deletion and cosine similarity search over person embeddings,
        plus best-effort search analytics and aggregate stats.

Functions:
    encode_vector(vector): Serialise a vector to float32 bytes.
    cosine_similarities(query, matrix): Row-wise `1 - cosine distance` against a query vector.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.errors import StoreError
from app.models import PersonEmbedding, SimilaritySearch
from app.schemas import EmbeddingStats, SimilarityResult

_LOGGER = logging.getLogger(__name__)

_VECTOR_DTYPE = "float32"


def encode_vector(vector: Sequence[float] | np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Return `1 - cosine_distance(query, row)` for every row of *matrix*.

    Rows (or a query) with zero norm score 0. Scores are clipped to [0, 1].
    """

    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * query_norm
    dots = matrix @ query
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(scores, 0.0, 1.0)


class EmbeddingStore:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def upsert(
        self,
        person_id: UUID,
        embedding_type: str,
        vector: Sequence[float] | np.ndarray,
        source_text: str,
        model: str,
        metadata: Optional[dict[str, Any]] = None,
        *,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> PersonEmbedding:
        """Insert or replace the embedding for (*person_id*, *embedding_type*).

        Concurrent writers for the same key resolve last-write-wins: an insert that loses the race
        on the unique key re-reads the winning row and overwrites it.
        """

        arr = np.asarray(vector, dtype=np.float32)
        if arr.ndim != 1 or arr.size == 0:
            raise StoreError("Embedding vector must be a non-empty 1-d sequence", entity_id=person_id, operation="upsert")

        values = dict(
            model=model,
            dimension=int(arr.size),
            vector=arr.tobytes(),
            vector_dtype=_VECTOR_DTYPE,
            source_text=source_text,
            tokens_used=tokens_used,
            cost=cost,
            metadata_json=json.dumps(metadata, default=str) if metadata is not None else None,
        )
        try:
            async with self._session_factory() as session:
                record = await self._select(session, person_id, embedding_type)
                if record is None:
                    record = PersonEmbedding(person_id=person_id, embedding_type=embedding_type, **values)
                    session.add(record)
                    try:
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        _LOGGER.info(
                            "Concurrent insert for person %s (%s); overwriting the stored row",
                            person_id,
                            embedding_type,
                        )
                        record = await self._select(session, person_id, embedding_type)
                        if record is None:
                            raise
                        await self._overwrite(session, record, values)
                else:
                    await self._overwrite(session, record, values)
                await session.refresh(record)
                return record
        except SQLAlchemyError as exc:
            _LOGGER.exception("Failed to store embedding for person %s (%s)", person_id, embedding_type)
            raise StoreError(f"Failed to store embedding: {exc}", entity_id=person_id, operation="upsert") from exc

    @staticmethod
    async def _select(session, person_id: UUID, embedding_type: str) -> Optional[PersonEmbedding]:
        result = await session.exec(
            select(PersonEmbedding).where(
                PersonEmbedding.person_id == person_id,
                PersonEmbedding.embedding_type == embedding_type,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _overwrite(session, record: PersonEmbedding, values: dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(record, key, value)
        # Set explicitly so an unchanged payload still counts as a new generation.
        record.updated_at = datetime.now(timezone.utc)
        session.add(record)
        await session.commit()

    async def get(self, person_id: UUID, embedding_type: str = "profile") -> Optional[PersonEmbedding]:
        try:
            async with self._session_factory() as session:
                return await self._select(session, person_id, embedding_type)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to get embedding: {exc}", entity_id=person_id, operation="get") from exc

    def decode_vector(self, record: PersonEmbedding) -> np.ndarray | None:
        """Decode the stored bytes, or return None when they do not match the recorded dimension."""

        dtype = (record.vector_dtype or _VECTOR_DTYPE).lower()
        try:
            arr = np.frombuffer(record.vector, dtype=np.dtype(dtype))
        except (TypeError, ValueError):
            return None
        if arr.size == 0 or (record.dimension and arr.size != record.dimension):
            return None
        return arr.astype(np.float32, copy=False)

    async def delete(self, person_id: UUID, embedding_type: str = "profile") -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(PersonEmbedding).where(
                        PersonEmbedding.person_id == person_id,
                        PersonEmbedding.embedding_type == embedding_type,
                    )
                )
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to delete embedding: {exc}", entity_id=person_id, operation="delete") from exc

    async def delete_for_person(self, person_id: UUID) -> int:
        """Remove every embedding type owned by *person_id*; called when the person is deleted."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(PersonEmbedding).where(PersonEmbedding.person_id == person_id))
                await session.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Failed to delete embeddings: {exc}", entity_id=person_id, operation="delete_for_person"
            ) from exc

    async def nearest_neighbors(
        self,
        query_vector: Sequence[float] | np.ndarray,
        embedding_type: str = "profile",
        limit: int = 10,
        similarity_threshold: float = 0.7,
    ) -> list[SimilarityResult]:
        if limit <= 0:
            return []
        query = np.asarray(query_vector, dtype=np.float32)

        try:
            async with self._session_factory() as session:
                result = await session.exec(
                    select(PersonEmbedding).where(PersonEmbedding.embedding_type == embedding_type)
                )
                records = list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query embeddings: {exc}", operation="nearest_neighbors") from exc

        candidates: list[PersonEmbedding] = []
        rows: list[np.ndarray] = []
        for record in records:
            vector = self.decode_vector(record)
            if vector is None or vector.size != query.size:
                _LOGGER.warning(
                    "Skipping embedding for person %s: dimension %s does not match query dimension %s",
                    record.person_id,
                    record.dimension,
                    query.size,
                )
                continue
            candidates.append(record)
            rows.append(vector)

        if not candidates:
            return []

        scores = cosine_similarities(query, np.vstack(rows))
        ranked = sorted(
            (
                (float(score), record)
                for score, record in zip(scores, candidates)
                if score >= similarity_threshold
            ),
            key=lambda item: (-item[0], str(item[1].person_id)),
        )

        results: list[SimilarityResult] = []
        for score, record in ranked[:limit]:
            snapshot = _load_metadata(record.metadata_json)
            results.append(
                SimilarityResult(
                    person_id=record.person_id,
                    similarity=score,
                    name=snapshot.get("person_name") or "Unknown",
                    email=snapshot.get("email") or "",
                )
            )
        return results

    async def record_search(
        self,
        *,
        query_vector: Sequence[float] | np.ndarray,
        embedding_type: str,
        model: str,
        results: Sequence[SimilarityResult],
        limit: int,
        similarity_threshold: float,
        execution_time_ms: float,
        query_text: Optional[str] = None,
        tokens_used: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> None:
        """Persist a search analytics row. Failures are logged and never raised."""

        try:
            snapshot = [
                {"person_id": str(item.person_id), "similarity": round(item.similarity, 6)} for item in results
            ]
            record = SimilaritySearch(
                query_text=query_text,
                query_vector=encode_vector(query_vector),
                embedding_type=embedding_type,
                model=model,
                results_json=json.dumps(snapshot),
                result_count=len(snapshot),
                limit=limit,
                similarity_threshold=similarity_threshold,
                execution_time_ms=execution_time_ms,
                tokens_used=tokens_used,
                cost=cost,
            )
            await self._insert_search(record)
        except Exception:
            _LOGGER.warning("Failed to record similarity search analytics", exc_info=True)

    async def _insert_search(self, record: SimilaritySearch) -> None:
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()

    async def stats(self) -> EmbeddingStats:
        try:
            async with self._session_factory() as session:
                by_type = await session.exec(
                    select(PersonEmbedding.embedding_type, func.count()).group_by(PersonEmbedding.embedding_type)
                )
                embeddings_by_type = {row[0]: int(row[1]) for row in by_type.all()}

                total_cost = await session.exec(select(func.coalesce(func.sum(PersonEmbedding.cost), 0.0)))
                search_row = await session.exec(
                    select(
                        func.count(SimilaritySearch.id),
                        func.coalesce(func.avg(SimilaritySearch.execution_time_ms), 0.0),
                        func.coalesce(func.sum(SimilaritySearch.cost), 0.0),
                    )
                )
                searches, avg_time, search_cost = search_row.one()
                return EmbeddingStats(
                    total_embeddings=sum(embeddings_by_type.values()),
                    embeddings_by_type=embeddings_by_type,
                    total_cost=round(float(total_cost.scalar_one()), 8),
                    total_searches=int(searches),
                    average_search_time_ms=float(avg_time),
                    total_search_cost=round(float(search_cost), 8),
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to get embedding stats: {exc}", operation="stats") from exc


def _load_metadata(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
