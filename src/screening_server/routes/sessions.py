"""Screening session endpoints — start sessions, read them, fetch the next question.

All endpoints require the ``X-Account-ID`` header.  The caller becomes
the session's creator; the target defaults to the caller when the body
does not name another participant.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from screening_engine.engine import ScreeningEngine
from screening_engine.models.session import (
    Destination,
    ScreeningSessionInfo,
    ScreeningSessionScreeningContext,
    ScreeningSessionScreeningInfo,
)

from screening_server.dependencies import get_account_id, get_db, get_engine

router = APIRouter(tags=["screening-sessions"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class CreateScreeningSessionRequest(BaseModel):
    """Body for POST /screening-sessions."""
    screening_flow_id: uuid.UUID | None = None
    target_account_id: uuid.UUID | None = None


class ScreeningSessionDetail(BaseModel):
    screening_session: ScreeningSessionInfo
    screening_session_screenings: list[ScreeningSessionScreeningInfo]
    destination: Destination | None = None


class NextQuestionResponse(BaseModel):
    """``context`` is null when the session is completed."""
    context: ScreeningSessionScreeningContext | None = None
    destination: Destination | None = None


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/screening-sessions", status_code=201)
async def create_screening_session(
    body: CreateScreeningSessionRequest,
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> ScreeningSessionInfo:
    """Start a session on the flow's active version.  422 on invalid input."""
    session_id = await engine.create_screening_session(
        db,
        screening_flow_id=body.screening_flow_id,
        target_account_id=body.target_account_id or account_id,
        created_by_account_id=account_id,
    )
    return await engine.find_screening_session(db, session_id)


@router.get("/screening-sessions")
async def list_screening_sessions(
    screening_flow_id: uuid.UUID = Query(...),
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> list[ScreeningSessionInfo]:
    """Sessions of a flow the caller took or started, most recent first."""
    return await engine.find_screening_sessions_by_flow(
        db, screening_flow_id=screening_flow_id, participant_account_id=account_id,
    )


@router.get("/screening-sessions/{screening_session_id}")
async def get_screening_session(
    screening_session_id: uuid.UUID,
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> ScreeningSessionDetail:
    session = await engine.find_screening_session(db, screening_session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return ScreeningSessionDetail(
        screening_session=session,
        screening_session_screenings=await engine.find_screening_session_screenings(
            db, screening_session_id,
        ),
        destination=await engine.determine_destination(db, screening_session_id),
    )


@router.get("/screening-sessions/{screening_session_id}/next-question")
async def get_next_question(
    screening_session_id: uuid.UUID,
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> NextQuestionResponse:
    """The next unanswered question, or a null context once the session is done."""
    if await engine.find_screening_session(db, screening_session_id) is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return NextQuestionResponse(
        context=await engine.find_next_unanswered_screening_session_screening_context(
            db, screening_session_id,
        ),
        destination=await engine.determine_destination(db, screening_session_id),
    )
