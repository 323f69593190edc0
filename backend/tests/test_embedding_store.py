"""Tests for the persistent embedding cache and nearest-neighbour search."""

from __future__ import annotations

import asyncio
import json
import math
from uuid import UUID

import numpy as np
import pytest
from sqlalchemy import func, select

from app.core.errors import StoreError
from app.models import PersonEmbedding, SimilaritySearch
from app.services import EmbeddingStore
from app.services.embedding_store import cosine_similarities


def _pid(value: int) -> UUID:
    return UUID(int=value)


@pytest.mark.asyncio
async def test_upsert_inserts_then_replaces_in_place(store, session_factory):
    first = await store.upsert(
        _pid(1),
        "profile",
        [0.1, 0.2, 0.3],
        "ada lovelace python",
        "text-embedding-3-small",
        {"person_name": "Ada Lovelace"},
        tokens_used=3,
        cost=0.00000006,
    )
    second = await store.upsert(
        _pid(1),
        "profile",
        [0.5, 0.5, 0.5, 0.5],
        "ada lovelace python rust",
        "text-embedding-3-large",
        {"person_name": "Ada King"},
        tokens_used=4,
    )

    assert second.id == first.id
    async with session_factory() as session:
        rows = (await session.exec(select(PersonEmbedding))).scalars().all()
    assert len(rows) == 1
    stored = rows[0]
    assert stored.source_text == "ada lovelace python rust"
    assert stored.model == "text-embedding-3-large"
    assert stored.dimension == 4
    assert json.loads(stored.metadata_json)["person_name"] == "Ada King"
    assert stored.updated_at >= stored.created_at
    np.testing.assert_allclose(store.decode_vector(stored), [0.5, 0.5, 0.5, 0.5])


@pytest.mark.asyncio
async def test_upsert_keeps_embedding_types_separate(store):
    await store.upsert(_pid(1), "profile", [1.0, 0.0], "profile text", "m")
    await store.upsert(_pid(1), "skills", [0.0, 1.0], "skills text", "m")

    profile = await store.get(_pid(1), "profile")
    skills = await store.get(_pid(1), "skills")
    assert profile is not None and skills is not None
    assert profile.id != skills.id
    assert await store.get(_pid(2), "profile") is None


@pytest.mark.asyncio
async def test_upsert_rejects_empty_vector(store):
    with pytest.raises(StoreError) as excinfo:
        await store.upsert(_pid(1), "profile", [], "text", "m")
    assert excinfo.value.entity_id == _pid(1)
    assert excinfo.value.operation == "upsert"


@pytest.mark.asyncio
async def test_delete_and_delete_for_person(store):
    await store.upsert(_pid(1), "profile", [1.0, 0.0], "a", "m")
    await store.upsert(_pid(1), "skills", [1.0, 0.0], "a", "m")
    await store.upsert(_pid(2), "profile", [1.0, 0.0], "b", "m")

    assert await store.delete(_pid(1), "skills") is True
    assert await store.delete(_pid(1), "skills") is False
    assert await store.get(_pid(1), "skills") is None

    assert await store.delete_for_person(_pid(1)) == 1
    assert await store.get(_pid(1), "profile") is None
    assert await store.get(_pid(2), "profile") is not None


@pytest.mark.asyncio
async def test_decode_vector_rejects_dimension_mismatch(store):
    record = await store.upsert(_pid(1), "profile", [1.0, 2.0, 3.0], "a", "m")
    record.dimension = 5
    assert store.decode_vector(record) is None


def test_cosine_similarities_handles_zero_vectors():
    scores = cosine_similarities(np.array([1.0, 0.0]), np.array([[1.0, 0.0], [0.0, 0.0], [-1.0, 0.0]]))
    assert scores.tolist() == [1.0, 0.0, 0.0]


@pytest.mark.asyncio
async def test_nearest_neighbors_orders_filters_and_limits(store):
    await store.upsert(_pid(1), "profile", [1.0, 0.0], "exact", "m", {"person_name": "Exact", "email": "e@x.io"})
    await store.upsert(_pid(2), "profile", [0.8, 0.6], "close", "m", {"person_name": "Close"})
    await store.upsert(_pid(3), "profile", [0.6, 0.8], "far", "m", {"person_name": "Far"})
    await store.upsert(_pid(4), "profile", [0.0, 1.0], "orthogonal", "m")
    await store.upsert(_pid(5), "skills", [1.0, 0.0], "other type", "m")

    results = await store.nearest_neighbors([1.0, 0.0], "profile", limit=10, similarity_threshold=0.5)
    assert [item.person_id for item in results] == [_pid(1), _pid(2), _pid(3)]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.8)
    assert results[2].similarity == pytest.approx(0.6)
    assert all(item.similarity >= 0.5 for item in results)
    assert results[0].name == "Exact"
    assert results[0].email == "e@x.io"
    assert results[-1].name == "Far"

    limited = await store.nearest_neighbors([1.0, 0.0], "profile", limit=2, similarity_threshold=0.0)
    assert [item.person_id for item in limited] == [_pid(1), _pid(2)]


@pytest.mark.asyncio
async def test_nearest_neighbors_breaks_ties_by_person_id(store):
    for value in (30, 10, 20):
        await store.upsert(_pid(value), "profile", [0.6, 0.8], f"person {value}", "m")

    results = await store.nearest_neighbors([0.6, 0.8], "profile", limit=3, similarity_threshold=0.9)
    assert [item.person_id for item in results] == [_pid(10), _pid(20), _pid(30)]
    assert len({item.similarity for item in results}) == 1


@pytest.mark.asyncio
async def test_nearest_neighbors_skips_mismatched_dimensions(store):
    await store.upsert(_pid(1), "profile", [1.0, 0.0, 0.0], "three dims", "m")
    await store.upsert(_pid(2), "profile", [1.0, 0.0], "two dims", "m")

    results = await store.nearest_neighbors([1.0, 0.0], "profile", limit=5, similarity_threshold=0.0)
    assert [item.person_id for item in results] == [_pid(2)]


@pytest.mark.asyncio
async def test_record_search_persists_snapshot(store, session_factory):
    await store.upsert(_pid(1), "profile", [1.0, 0.0], "a", "m")
    results = await store.nearest_neighbors([1.0, 0.0], "profile", limit=5, similarity_threshold=0.0)

    await store.record_search(
        query_vector=[1.0, 0.0],
        embedding_type="profile",
        model="text-embedding-3-small",
        results=results,
        limit=5,
        similarity_threshold=0.0,
        execution_time_ms=1.5,
        query_text="python engineer",
        tokens_used=2,
        cost=0.00000004,
    )

    async with session_factory() as session:
        rows = (await session.exec(select(SimilaritySearch))).scalars().all()
    assert len(rows) == 1
    assert rows[0].query_text == "python engineer"
    assert rows[0].result_count == 1
    assert json.loads(rows[0].results_json) == [{"person_id": str(_pid(1)), "similarity": 1.0}]


@pytest.mark.asyncio
async def test_record_search_swallows_write_failures(store, monkeypatch):
    async def _boom(_record):
        raise RuntimeError("analytics table is locked")

    monkeypatch.setattr(store, "_insert_search", _boom)

    await store.record_search(
        query_vector=[1.0, 0.0],
        embedding_type="profile",
        model="m",
        results=[],
        limit=5,
        similarity_threshold=0.7,
        execution_time_ms=0.1,
    )


@pytest.mark.asyncio
async def test_stats_aggregates_counts_and_costs(store, session_factory):
    await store.upsert(_pid(1), "profile", [1.0, 0.0], "a", "m", cost=0.0001)
    await store.upsert(_pid(2), "profile", [0.0, 1.0], "b", "m", cost=0.0002)
    await store.upsert(_pid(1), "skills", [1.0, 1.0], "c", "m", cost=None)
    await store.record_search(
        query_vector=[1.0, 0.0],
        embedding_type="profile",
        model="m",
        results=[],
        limit=5,
        similarity_threshold=0.7,
        execution_time_ms=4.0,
        cost=0.00005,
    )
    await store.record_search(
        query_vector=[1.0, 0.0],
        embedding_type="profile",
        model="m",
        results=[],
        limit=5,
        similarity_threshold=0.7,
        execution_time_ms=2.0,
    )

    stats = await store.stats()
    assert stats.total_embeddings == 3
    assert stats.embeddings_by_type == {"profile": 2, "skills": 1}
    assert math.isclose(stats.total_cost, 0.0003, rel_tol=1e-6)
    assert stats.total_searches == 2
    assert stats.average_search_time_ms == pytest.approx(3.0)
    assert math.isclose(stats.total_search_cost, 0.00005, rel_tol=1e-6)

    async with session_factory() as session:
        count = (await session.exec(select(func.count()).select_from(SimilaritySearch))).scalar_one()
    assert count == 2


def test_new_rows_carry_timezone_aware_timestamps():
    record = PersonEmbedding(
        person_id=_pid(1),
        embedding_type="profile",
        model="m",
        dimension=2,
        vector=b"",
        source_text="a",
    )
    search = SimilaritySearch(
        query_vector=b"",
        embedding_type="profile",
        model="m",
        results_json="[]",
        similarity_threshold=0.7,
        execution_time_ms=0.0,
    )
    assert record.created_at.tzinfo is not None
    assert record.updated_at.tzinfo is not None
    assert search.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_writes_persist_timestamps(store, session_factory):
    record = await store.upsert(_pid(1), "profile", [1.0, 0.0], "a", "m")
    await store.record_search(
        query_vector=[1.0, 0.0],
        embedding_type="profile",
        model="m",
        results=[],
        limit=5,
        similarity_threshold=0.7,
        execution_time_ms=0.2,
    )

    assert record.created_at is not None
    async with session_factory() as session:
        searches = (await session.exec(select(SimilaritySearch))).scalars().all()
    assert len(searches) == 1
    assert searches[0].created_at is not None


@pytest.mark.asyncio
async def test_identical_payload_still_bumps_updated_at(store):
    first = await store.upsert(_pid(1), "profile", [1.0, 0.0], "same text", "m", {"person_name": "Ada"})
    second = await store.upsert(_pid(1), "profile", [1.0, 0.0], "same text", "m", {"person_name": "Ada"})

    assert second.id == first.id
    assert second.updated_at > first.updated_at
    assert second.created_at == first.created_at


@pytest.mark.asyncio
async def test_concurrent_upserts_for_same_key_resolve_to_one_row(file_session_factory):
    store = EmbeddingStore(file_session_factory)

    first, second = await asyncio.gather(
        store.upsert(_pid(1), "profile", [1.0, 0.0], "first writer", "m"),
        store.upsert(_pid(1), "profile", [0.0, 1.0], "second writer", "m"),
    )

    assert first.id == second.id
    async with file_session_factory() as session:
        rows = (await session.exec(select(PersonEmbedding))).scalars().all()
    assert len(rows) == 1
    assert rows[0].source_text in {"first writer", "second writer"}
    expected = [1.0, 0.0] if rows[0].source_text == "first writer" else [0.0, 1.0]
    np.testing.assert_allclose(store.decode_vector(rows[0]), expected)
