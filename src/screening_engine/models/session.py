"""Session models — the contract between the engine and API callers.

Like the catalog projections these are decoupled from the ORM models in
``screening_db``; the engine converts rows before returning them.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from screening_engine.models.catalog import (
    ScreeningAnswerOptionInfo,
    ScreeningQuestionInfo,
)


class ScreeningSessionInfo(BaseModel):
    """Public view of a session."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    screening_flow_version_id: uuid.UUID
    target_account_id: uuid.UUID
    created_by_account_id: uuid.UUID
    completed: bool
    crisis_indicated: bool
    created_at: datetime
    completed_at: Optional[datetime] = None
    crisis_indicated_at: Optional[datetime] = None


class ScreeningSessionScreeningInfo(BaseModel):
    """One visited screening within a session."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    screening_session_id: uuid.UUID
    screening_version_id: uuid.UUID
    screening_order: int
    completed: bool
    score: int


class ScreeningAnswerInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    screening_answer_option_id: uuid.UUID
    screening_session_screening_id: uuid.UUID
    created_by_account_id: uuid.UUID
    text: Optional[str] = None
    answer_batch: int
    created_at: datetime


class ScreeningSessionScreeningContext(BaseModel):
    """The next question a participant should see, with its options."""

    session_screening: ScreeningSessionScreeningInfo
    question: ScreeningQuestionInfo
    answer_options: list[ScreeningAnswerOptionInfo]


class CreateAnswer(BaseModel):
    """One answer in a submission.  Fields are optional so that missing
    values are reported through aggregated validation, not a parse error."""

    screening_answer_option_id: Optional[uuid.UUID] = None
    text: Optional[str] = None


# Where a session should send the participant next, if anywhere.
Destination = Literal["crisis", "completed"]
