"""Rule document models — the decision-table DSL for scoring and orchestration.

A rule document is YAML text stored on a screening version (scoring) or a
flow version (orchestration)::

    outputs:                  # defaults for every output field
      completed: false
      score: {fact: total_score}
    rules:                    # evaluated in order; first match wins
      - name: all answered
        when:                 # predicates are AND-ed; empty means always
          - {fact: all_answered, op: eq, value: true}
        then:                 # overrides applied on top of ``outputs``
          completed: true

Facts are addressed by dotted paths (``current.questions.8.answer_option.score``);
integer segments index lists, negative indices count from the end.  An
output value of the form ``{fact: path}`` is replaced by the fact's value.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Predicate(BaseModel):
    """A single condition over one fact.

    Operators:
      - eq, ne: equality / inequality
      - lt, le, gt, ge: numeric comparisons
      - between: value is [min, max] inclusive
      - in, not_in: fact is / is not one of a list of values
      - contains, not_contains: substring / element membership
      - contains_any, contains_all: set membership
      - matches: regex search
      - exists, not_exists: the path resolves to a non-null value (no ``value``)
    """

    model_config = ConfigDict(extra="forbid")

    fact: str
    op: Literal[
        "eq", "ne", "contains", "not_contains", "matches",
        "contains_any", "contains_all", "in", "not_in",
        "lt", "le", "gt", "ge", "between",
        "exists", "not_exists",
    ]
    value: Any = None


class RuleBranch(BaseModel):
    """If ALL predicates in ``when`` hold, apply ``then`` over the defaults."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    when: List[Predicate] = Field(default_factory=list)
    then: Dict[str, Any] = Field(default_factory=dict)


class DecisionTable(BaseModel):
    """A parsed rule document."""

    model_config = ConfigDict(extra="forbid")

    outputs: Dict[str, Any] = Field(default_factory=dict)
    rules: List[RuleBranch] = Field(default_factory=list)
