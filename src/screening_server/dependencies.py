"""FastAPI dependency injection — DB sessions, the engine, and caller identity.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on
error; the engine and repository only ever ``flush()``.  Crisis
notifications the engine queued during the request go out only after the
commit succeeds.
"""

import hmac
import uuid
from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.engine import get_session_factory
from screening_engine.engine import ScreeningEngine


# ------------------------------------------------------------------
# Engine — built once during lifespan
# ------------------------------------------------------------------

def get_engine(request: Request) -> ScreeningEngine:
    return request.app.state.engine


# ------------------------------------------------------------------
# Database session — transaction boundary lives here
# ------------------------------------------------------------------

async def get_db(
    engine: ScreeningEngine = Depends(get_engine),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error.

    Queued crisis notifications are sent after the commit, or dropped
    with the rollback.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            engine.discard_crisis_notifications(session)
            raise
        await engine.dispatch_crisis_notifications(session)


# ------------------------------------------------------------------
# Caller identity — extracted from the X-Account-ID header
# ------------------------------------------------------------------

async def get_account_id(
    request: Request,
    x_account_id: str | None = Header(None, alias="X-Account-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> uuid.UUID:
    """Extract the caller's account id from ``X-Account-ID``.

    401 if the header is missing, 400 if it is not a UUID.  When
    ``TRUSTED_PROXY_SECRET`` is configured the request must also carry a
    matching ``X-Proxy-Secret`` (403 otherwise).
    """
    if not x_account_id:
        raise HTTPException(status_code=401, detail="X-Account-ID header is required")

    expected_secret: str | None = request.app.state.settings.trusted_proxy_secret
    if expected_secret:
        if not x_proxy_secret:
            raise HTTPException(status_code=403, detail="X-Proxy-Secret header is required")
        # Constant-time comparison
        if not hmac.compare_digest(x_proxy_secret, expected_secret):
            raise HTTPException(status_code=403, detail="Invalid proxy secret")

    try:
        return uuid.UUID(x_account_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Account-ID must be a UUID") from None
