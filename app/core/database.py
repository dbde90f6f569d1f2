from typing import Any, Dict, List, Sequence

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from app.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False)

# Talk to the DB through async sessions without refreshes after closed conn to avoid errors in async programming
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


# This is the "Bridge" that gives my routes access to postgres
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# All the models are "stored" in the Base class will be processed by the Engine
class Base(DeclarativeBase):
    pass


def create_readonly_engine(
    url: str, statement_timeout_ms: int, pool_size: int = 5
) -> AsyncEngine:
    """
    Engine for AI generated SQL.

    Every pooled asyncpg connection starts with a statement timeout and
    read-only transactions, so the database enforces both limits even if
    the role grants were misconfigured.
    """
    return create_async_engine(
        url,
        pool_size=pool_size,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "statement_timeout": str(statement_timeout_ms),
                "default_transaction_read_only": "on",
            }
        },
    )


class ReadonlyDatabase:
    """Thin raw-SQL facade over the read-only engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def raw(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        # asyncpg takes $1-style positional parameters as-is
        async with self.engine.connect() as conn:
            result = await conn.exec_driver_sql(sql, tuple(params))
            return [dict(row) for row in result.mappings().all()]

    async def dispose(self) -> None:
        await self.engine.dispose()
