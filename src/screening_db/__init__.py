"""screening_db — PostgreSQL persistence layer for screening sessions.

ORM models for the versioned screening catalog and per-session state, the
async engine factory, and the repository used by ``screening_engine``.
"""

from screening_db.engine import get_engine, get_session_factory
from screening_db.models.catalog import (
    Screening,
    ScreeningAnswerOption,
    ScreeningFlow,
    ScreeningFlowVersion,
    ScreeningQuestion,
    ScreeningVersion,
)
from screening_db.models.enums import AnswerFormat, ContentHint
from screening_db.models.session import (
    Account,
    ScreeningAnswer,
    ScreeningSession,
    ScreeningSessionScreening,
)
from screening_db.repository import ScreeningRepository

__all__ = [
    "Account",
    "AnswerFormat",
    "ContentHint",
    "Screening",
    "ScreeningAnswer",
    "ScreeningAnswerOption",
    "ScreeningFlow",
    "ScreeningFlowVersion",
    "ScreeningQuestion",
    "ScreeningRepository",
    "ScreeningSession",
    "ScreeningSessionScreening",
    "ScreeningVersion",
    "get_engine",
    "get_session_factory",
]
