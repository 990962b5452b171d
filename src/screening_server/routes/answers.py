"""Answer submission endpoint.

One request answers one question.  The response carries the new answer
ids and, so the client needs no second round trip, the next question
(null once the session has completed) and the session's destination.
"""

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from screening_engine.engine import ScreeningEngine
from screening_engine.models.session import (
    CreateAnswer,
    Destination,
    ScreeningSessionScreeningContext,
)

from screening_server.dependencies import get_account_id, get_db, get_engine

router = APIRouter(tags=["screening-answers"])


class CreateScreeningAnswersRequest(BaseModel):
    """Body for POST /screening-answers."""
    screening_session_screening_id: uuid.UUID | None = None
    screening_question_id: uuid.UUID | None = None
    answers: list[CreateAnswer] = Field(default_factory=list)


class CreateScreeningAnswersResponse(BaseModel):
    screening_answer_ids: list[uuid.UUID]
    next_question: ScreeningSessionScreeningContext | None = None
    destination: Destination | None = None


@router.post("/screening-answers", status_code=201)
async def create_screening_answers(
    body: CreateScreeningAnswersRequest,
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> CreateScreeningAnswersResponse:
    answer_ids = await engine.create_screening_answers(
        db,
        screening_session_screening_id=body.screening_session_screening_id,
        screening_question_id=body.screening_question_id,
        answers=body.answers,
        created_by_account_id=account_id,
    )

    # Validation succeeded, so the session screening exists
    session_screening = await engine.find_screening_session_screening(
        db, body.screening_session_screening_id,
    )
    session_id = session_screening.screening_session_id
    return CreateScreeningAnswersResponse(
        screening_answer_ids=answer_ids,
        next_question=await engine.find_next_unanswered_screening_session_screening_context(
            db, session_id,
        ),
        destination=await engine.determine_destination(db, session_id),
    )
