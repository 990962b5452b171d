"""screening_engine — adaptive behavioral-health screening engine.

Public API:
    ScreeningEngine   — session lifecycle, answer submission and progression
    ScreeningCatalog  — read-only lookups over screenings and flows
    RuleEvaluator     — sandbox for YAML decision-table rules
    ScoringEvaluator  — runs a screening version's scoring rule
    OrchestrationEvaluator — runs a flow version's orchestration rule

Collaborator interfaces:
    AccountDirectory  — resolves account ids (default: local accounts table)
    CrisisNotifier    — receives crisis indications (default: application log)

Errors (all subclasses of ScreeningError):
    ValidationError, ConfigurationError, IntegrityError, EvaluationError
"""

from screening_engine.catalog import ScreeningCatalog
from screening_engine.engine import ScreeningEngine
from screening_engine.errors import (
    ConfigurationError,
    EvaluationError,
    FieldError,
    IntegrityError,
    ScreeningError,
    ValidationError,
)
from screening_engine.evaluator import RuleEvaluator
from screening_engine.interfaces import (
    AccountDirectory,
    CrisisNotifier,
    LoggingCrisisNotifier,
    RepositoryAccountDirectory,
)
from screening_engine.models.outputs import OrchestrationOutput, ScoringOutput
from screening_engine.models.session import (
    CreateAnswer,
    Destination,
    ScreeningAnswerInfo,
    ScreeningSessionInfo,
    ScreeningSessionScreeningContext,
    ScreeningSessionScreeningInfo,
)
from screening_engine.orchestration import OrchestrationEvaluator
from screening_engine.scoring import ScoringEvaluator

__all__ = [
    # Engine & evaluators
    "ScreeningEngine",
    "ScreeningCatalog",
    "RuleEvaluator",
    "ScoringEvaluator",
    "OrchestrationEvaluator",
    "ScoringOutput",
    "OrchestrationOutput",
    # Session models
    "CreateAnswer",
    "Destination",
    "ScreeningAnswerInfo",
    "ScreeningSessionInfo",
    "ScreeningSessionScreeningContext",
    "ScreeningSessionScreeningInfo",
    # Collaborators
    "AccountDirectory",
    "CrisisNotifier",
    "LoggingCrisisNotifier",
    "RepositoryAccountDirectory",
    # Errors
    "ScreeningError",
    "ValidationError",
    "FieldError",
    "ConfigurationError",
    "IntegrityError",
    "EvaluationError",
]
