"""Async engine for the naptrack schema (SQLAlchemy + asyncpg), plus schema bootstrap from db/schema.sql."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).resolve().parent.parent / "db" / "schema.sql"


def schema_statements(sql: str) -> List[str]:
    """Split the DDL file into single statements. `--` comment lines are dropped."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


class DatabaseManager:
    """One engine per process. main.py connects it in the lifespan; ChildDataManager borrows sessions."""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._make_session: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    # Used by: main.py lifespan (startup)
    async def connect(self, database_url: Optional[str], create_schema: bool = False) -> None:
        if self.is_connected:
            logger.warning("connect() called on an open engine; ignoring")
            return
        if not database_url:
            logger.warning("DB_CONNECTION_STRING not set (settings.DATABASE_URL is empty) - running without persistence")
            return

        self._engine = create_async_engine(database_url, echo=False, pool_pre_ping=True)
        self._make_session = async_sessionmaker(bind=self._engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Database engine created")

        if create_schema:
            await self.ensure_schema()

    # Used by: connect (create_schema=True)
    async def ensure_schema(self) -> None:
        statements = schema_statements(SCHEMA_FILE.read_text())
        async with self.transaction() as session:
            for statement in statements:
                await session.execute(text(statement))
        logger.info(f"Schema ensured ({len(statements)} statements from {SCHEMA_FILE.name})")

    # Used by: main.py lifespan (shutdown)
    async def disconnect(self) -> None:
        if not self.is_connected:
            return
        await self._engine.dispose()
        self._engine = None
        self._make_session = None
        logger.info("Database engine disposed")

    # Used by: ChildDataManager reads
    def session(self) -> AsyncSession:
        """Use as: async with db.session() as session: ..."""
        if self._make_session is None:
            raise RuntimeError("Database not connected")
        return self._make_session()

    # Used by: ChildDataManager writes (commit on exit, rollback on error)
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session() as session:
            async with session.begin():
                yield session


_db: Optional[DatabaseManager] = None


def get_database() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager()
    return _db
