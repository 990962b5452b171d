"""Pydantic models for rule documents, rule outputs and public projections."""

from screening_engine.models.catalog import (
    ScreeningAnswerOptionInfo,
    ScreeningFlowInfo,
    ScreeningFlowVersionInfo,
    ScreeningInfo,
    ScreeningQuestionInfo,
    ScreeningVersionInfo,
)
from screening_engine.models.outputs import OrchestrationOutput, ScoringOutput
from screening_engine.models.rule import DecisionTable, Predicate, RuleBranch
from screening_engine.models.session import (
    CreateAnswer,
    Destination,
    ScreeningAnswerInfo,
    ScreeningSessionInfo,
    ScreeningSessionScreeningContext,
    ScreeningSessionScreeningInfo,
)

__all__ = [
    # Rule documents
    "DecisionTable",
    "Predicate",
    "RuleBranch",
    "OrchestrationOutput",
    "ScoringOutput",
    # Catalog projections
    "ScreeningAnswerOptionInfo",
    "ScreeningFlowInfo",
    "ScreeningFlowVersionInfo",
    "ScreeningInfo",
    "ScreeningQuestionInfo",
    "ScreeningVersionInfo",
    # Session projections
    "CreateAnswer",
    "Destination",
    "ScreeningAnswerInfo",
    "ScreeningSessionInfo",
    "ScreeningSessionScreeningContext",
    "ScreeningSessionScreeningInfo",
]
