"""Person embedding cache model.

Classes:
    PersonEmbedding: One cached embedding vector per (person, embedding type).

Functions:
    set_updated_at(_, __, target): SQLAlchemy event hook that maintains the `updated_at` timestamp.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, LargeBinary, Text, UniqueConstraint, event
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PersonEmbedding(SQLModel, table=True):
    __tablename__ = "person_embeddings"
    __table_args__ = (
        UniqueConstraint(
            "person_id",
            "embedding_type",
            name="uq_person_embeddings_person_type",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    person_id: UUID = Field(index=True)
    embedding_type: str = Field(default="profile", index=True)
    model: str
    dimension: int
    vector: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    vector_dtype: str = Field(default="float32")
    source_text: str = Field(sa_column=Column(Text, nullable=False))
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    metadata_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


@event.listens_for(PersonEmbedding, "before_update", propagate=True)
def set_updated_at(_, __, target):
    target.updated_at = _utcnow()
