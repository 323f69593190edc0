"""Append-only analytics record for similarity searches."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, LargeBinary, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimilaritySearch(SQLModel, table=True):
    __tablename__ = "similarity_searches"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    query_text: Optional[str] = Field(default=None, sa_column=Column(Text))
    query_vector: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    embedding_type: str = Field(index=True)
    model: str
    results_json: str = Field(sa_column=Column(Text, nullable=False))
    result_count: int = Field(default=0)
    limit: int = Field(default=10)
    similarity_threshold: float
    execution_time_ms: float
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    created_at: datetime = Field(default_factory=_utcnow, index=True)
