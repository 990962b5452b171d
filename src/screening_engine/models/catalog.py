"""Public projections of catalog rows.

Built from ORM objects with ``model_validate(row)`` so API consumers never
see SQLAlchemy instances.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from screening_db.models.enums import AnswerFormat, ContentHint


class _FromRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ScreeningInfo(_FromRow):
    id: uuid.UUID
    name: str
    active_screening_version_id: Optional[uuid.UUID] = None


class ScreeningVersionInfo(_FromRow):
    id: uuid.UUID
    screening_id: uuid.UUID
    version_number: int
    frozen_at: Optional[datetime] = None


class ScreeningQuestionInfo(_FromRow):
    id: uuid.UUID
    screening_version_id: uuid.UUID
    question_text: str
    answer_format: AnswerFormat
    content_hint: ContentHint
    display_order: int


class ScreeningAnswerOptionInfo(_FromRow):
    id: uuid.UUID
    screening_question_id: uuid.UUID
    answer_option_text: str
    score: int
    indicates_crisis: bool
    display_order: int


class ScreeningFlowInfo(_FromRow):
    id: uuid.UUID
    institution_id: str
    name: str
    active_screening_flow_version_id: Optional[uuid.UUID] = None


class ScreeningFlowVersionInfo(_FromRow):
    id: uuid.UUID
    screening_flow_id: uuid.UUID
    version_number: int
    initial_screening_id: uuid.UUID
    frozen_at: Optional[datetime] = None
