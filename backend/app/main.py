"""Process bootstrap for the talent match retrieval services.

The store, provider and HTTP collaborators are built here and injected into RAGService;
nothing downstream reaches for module-level handles.

Functions:
    configure_logging(level): Configure the root logger for scripts and workers.
    build_rag_service(...): Wire settings into a ready RAGService.
    rag_lifespan(...): Initialise the database, yield a RAGService, then close HTTP clients.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import Settings, get_settings
from app.db.session import create_engine_for, init_db
from app.services import (
    AnalysisToolClient,
    EmbeddingStore,
    HttpPersonDirectory,
    OpenAIService,
    RAGService,
    SimilarityFinder,
)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_rag_service(
    session_factory: async_sessionmaker,
    *,
    settings: Optional[Settings] = None,
    openai_service: Optional[OpenAIService] = None,
    analysis_client: Optional[AnalysisToolClient] = None,
    directory: Optional[HttpPersonDirectory] = None,
) -> RAGService:
    settings = settings or get_settings()
    openai_service = openai_service or OpenAIService(settings=settings)
    store = EmbeddingStore(session_factory)
    return RAGService(
        openai_service=openai_service,
        store=store,
        finder=SimilarityFinder(store, model=openai_service.embedding_model),
        analysis_client=analysis_client or AnalysisToolClient(settings=settings),
        directory=directory or HttpPersonDirectory(settings=settings),
        settings=settings,
    )


@asynccontextmanager
async def rag_lifespan(settings: Optional[Settings] = None) -> AsyncIterator[RAGService]:
    settings = settings or get_settings()
    engine: AsyncEngine = create_engine_for(settings.database_url)
    await init_db(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    analysis_client = AnalysisToolClient(settings=settings)
    directory = HttpPersonDirectory(settings=settings)
    service = build_rag_service(
        session_factory,
        settings=settings,
        analysis_client=analysis_client,
        directory=directory,
    )
    try:
        yield service
    finally:
        await analysis_client.aclose()
        await directory.aclose()
        await engine.dispose()
