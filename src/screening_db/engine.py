"""Process-wide async engine and session factory for the screening database.

Both are built on first use.  Session state (answers, scores, the crisis
flag) is written under ``SELECT ... FOR UPDATE`` on the session row, so
pooled connections are checked with ``pool_pre_ping`` before they are
handed to a request that may hold that lock.

Tuning, all optional:
  - ``PG_POOL_SIZE`` / ``PG_MAX_OVERFLOW``: connection pool bounds
  - ``PG_POOL_RECYCLE``: seconds before a pooled connection is replaced
  - ``SQL_ECHO``: log every statement (``1`` / ``true``)
"""

import os
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from screening_db.config import get_async_url

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options() -> dict[str, Any]:
    return {
        "echo": os.getenv("SQL_ECHO", "").lower() in ("1", "true", "yes"),
        "pool_size": int(os.getenv("PG_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("PG_MAX_OVERFLOW", "10")),
        "pool_recycle": int(os.getenv("PG_POOL_RECYCLE", "1800")),
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_async_url(), **_engine_options())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit so responses can be built from them."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections; the next ``get_engine()`` builds a fresh engine."""
    global _engine, _session_factory
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()
