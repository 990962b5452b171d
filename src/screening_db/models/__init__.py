"""ORM models for screening_db."""

from screening_db.models.base import Base
from screening_db.models.catalog import (
    FrozenVersionError,
    Screening,
    ScreeningAnswerOption,
    ScreeningFlow,
    ScreeningFlowVersion,
    ScreeningQuestion,
    ScreeningVersion,
    screening_institution,
)
from screening_db.models.enums import AnswerFormat, ContentHint
from screening_db.models.session import (
    Account,
    ScreeningAnswer,
    ScreeningSession,
    ScreeningSessionScreening,
)

__all__ = [
    "Base",
    # Catalog
    "Screening",
    "ScreeningVersion",
    "ScreeningQuestion",
    "ScreeningAnswerOption",
    "ScreeningFlow",
    "ScreeningFlowVersion",
    "FrozenVersionError",
    "screening_institution",
    # Enums
    "AnswerFormat",
    "ContentHint",
    # Session state
    "Account",
    "ScreeningSession",
    "ScreeningSessionScreening",
    "ScreeningAnswer",
]
