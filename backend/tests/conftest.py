from collections.abc import AsyncGenerator
from typing import Optional
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import Settings
from app.core.errors import AnalysisError, ProviderError
from app.db.session import create_engine_for, init_db
from app.schemas import PersonProfile
from app.services import EmbeddingStore
from app.services.analysis_client import AnalysisResult
from app.services.openai_client import EmbeddingResult, TokenUsage
from app.services.pricing import embedding_cost


@pytest_asyncio.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory over a file-backed SQLite database, for tests that run sessions concurrently."""

    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'talent_match.db'}")
    await init_db(engine)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture()
def store(session_factory) -> EmbeddingStore:
    return EmbeddingStore(session_factory)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        openai_api_key=None,
        similarity_threshold=0.7,
        similar_persons_top_n=3,
        search_default_limit=10,
        batch_concurrency=1,
    )


class FakeOpenAIService:
    """Deterministic stand-in for OpenAIService.

    Texts containing a key of `vectors` embed to that vector; everything else embeds to `default`.
    Texts containing any marker in `fail_on` raise ProviderError.
    """

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        *,
        default: Optional[list[float]] = None,
        fail_on: Optional[set[str]] = None,
    ) -> None:
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail_on = fail_on or set()
        self.embed_calls: list[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def embedding_model(self) -> str:
        return "text-embedding-3-small"

    async def generate_embedding(self, text: str, **_: object) -> EmbeddingResult:
        self.embed_calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise ProviderError("simulated provider outage", operation="generate_embedding")
        vector = self.default
        for key, candidate in self.vectors.items():
            if key in text:
                vector = candidate
                break
        tokens = len(text.split())
        return EmbeddingResult(
            vector=list(vector),
            model=self.embedding_model,
            usage=TokenUsage(
                prompt_tokens=tokens,
                total_tokens=tokens,
                cost=embedding_cost(tokens, self.embedding_model),
            ),
        )


class InMemoryPersonDirectory:
    def __init__(self, people: list[PersonProfile], *, failing_ids: Optional[set[UUID]] = None) -> None:
        self.people = {person.id: person for person in people}
        self.failing_ids = failing_ids or set()
        self.fetch_calls: list[UUID] = []

    async def fetch_person_with_relations(self, person_id: UUID) -> Optional[PersonProfile]:
        self.fetch_calls.append(person_id)
        if person_id in self.failing_ids:
            raise RuntimeError(f"upstream timeout for {person_id}")
        return self.people.get(person_id)

    async def list_people(self) -> list[PersonProfile]:
        return list(self.people.values())


class FakeAnalysisClient:
    def __init__(self, *, result_text: str = "Strong backend engineer.", error: Optional[Exception] = None) -> None:
        self.result_text = result_text
        self.error = error
        self.calls: list[dict[str, str]] = []

    async def analyze_data(self, data: str, analysis_type: str, **kwargs: object) -> AnalysisResult:
        self.calls.append({"data": data, "analysis_type": analysis_type, **kwargs})
        if self.error is not None:
            raise self.error
        return AnalysisResult(result_text=self.result_text, usage_metadata={"totalTokens": 321})

    async def is_healthy(self) -> bool:
        return self.error is None


def make_person(
    index: int,
    name: str,
    *,
    skills: Optional[list[dict]] = None,
    technologies: Optional[list[dict]] = None,
    education: Optional[list[dict]] = None,
    notes: Optional[str] = None,
) -> PersonProfile:
    return PersonProfile(
        id=UUID(int=index),
        name=name,
        email=f"{name.split()[0].lower()}@example.com",
        skills=skills or [],
        technologies=technologies or [],
        education=education or [],
        notes=notes,
    )


@pytest.fixture()
def failing_analysis_client() -> FakeAnalysisClient:
    return FakeAnalysisClient(error=AnalysisError("Tool execution failed: upstream 500"))
