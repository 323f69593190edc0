"""Database engine utilities.

Engines are created and disposed by their owner (see `app.main.rag_lifespan`); this module
keeps no module-level engine or session handles.

Functions:
    create_engine_for(url): Build an async engine with SQLite-friendly connect args.
    init_db(bind): Create database tables and apply SQLite pragmas.
"""

from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

# Register table models on SQLModel.metadata before create_all runs.
from app import models  # noqa: F401


def create_engine_for(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        db_file = url.split(":///", 1)[-1]
        if db_file and db_file != ":memory:":
            db_path = Path(db_file).resolve()
            if db_path.parent.name:
                db_path.parent.mkdir(parents=True, exist_ok=True)

    return create_async_engine(
        url,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


async def init_db(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        if bind.url.get_backend_name() == "sqlite":
            await _apply_sqlite_pragmas(conn)


async def _apply_sqlite_pragmas(conn) -> None:
    await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
    await conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
