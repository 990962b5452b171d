"""Declared output shapes for the two rule types.

Rule results are validated strictly: a string ``"true"`` is not a bool and
unknown fields are rejected, so authoring mistakes surface as
``ConfigurationError`` rather than being coerced.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt


class ScoringOutput(BaseModel):
    """Result of a screening version's scoring rule."""

    model_config = ConfigDict(extra="forbid")

    completed: StrictBool
    score: StrictInt


class OrchestrationOutput(BaseModel):
    """Result of a flow version's orchestration rule.

    ``next_screening_id`` is required but nullable; a rule must say
    explicitly that there is no next screening.
    """

    model_config = ConfigDict(extra="forbid")

    completed: StrictBool
    crisis_indicated: StrictBool
    next_screening_id: Optional[uuid.UUID]
