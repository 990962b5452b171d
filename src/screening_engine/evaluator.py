"""RuleEvaluator — the sandbox that runs authored scoring and orchestration rules.

Rules are data, not code: a YAML decision table (see
:mod:`screening_engine.models.rule`) is parsed with ``yaml.safe_load`` and
interpreted against a plain fact dictionary.  Nothing in a rule can reach
the filesystem, the network or the database, and every evaluation is
bounded by a step budget.

Failure modes:
  - the source is not YAML, is too large, or is not a decision table,
    an operator receives an unusable operand, or the budget runs out:
    :class:`EvaluationError`
  - the result does not fit the declared output model:
    :class:`ConfigurationError`
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, TypeVar

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from screening_engine.constants import (
    RULE_MAX_DEPTH,
    RULE_MAX_MATCH_CHARS,
    RULE_MAX_SOURCE_BYTES,
    RULE_MAX_STEPS,
)
from screening_engine.errors import ConfigurationError, EvaluationError
from screening_engine.models.rule import DecisionTable, Predicate

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

# Returned by path resolution when a fact does not exist
_MISSING = object()

# A counted repetition with an open or wide upper bound: {n,} {n,m} {,m}
_COUNTED_REPEAT = re.compile(r"\{\d*,\d*\}")


class RuleEvaluator:
    """Parses decision tables and evaluates them against facts.

    Holds only its limits; safe to share between concurrent calls.
    """

    def __init__(
        self,
        *,
        max_steps: int = RULE_MAX_STEPS,
        max_depth: int = RULE_MAX_DEPTH,
        max_source_bytes: int = RULE_MAX_SOURCE_BYTES,
        max_match_chars: int = RULE_MAX_MATCH_CHARS,
    ) -> None:
        self.max_steps = max_steps
        self.max_depth = max_depth
        self.max_source_bytes = max_source_bytes
        self.max_match_chars = max_match_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, rule_source: str) -> DecisionTable:
        """Parse YAML rule text into a :class:`DecisionTable`."""
        if not isinstance(rule_source, str) or not rule_source.strip():
            raise EvaluationError("Rule source is empty")
        if len(rule_source.encode("utf-8")) > self.max_source_bytes:
            raise EvaluationError(
                f"Rule source exceeds {self.max_source_bytes} bytes"
            )
        try:
            document = yaml.safe_load(rule_source)
        except yaml.YAMLError as exc:
            raise EvaluationError(f"Rule source is not valid YAML: {exc}") from exc
        if not isinstance(document, dict):
            raise EvaluationError("Rule source must be a mapping with 'outputs' and 'rules'")
        try:
            table = DecisionTable.model_validate(document)
        except PydanticValidationError as exc:
            raise EvaluationError(f"Rule document is malformed: {exc}") from exc

        for branch in table.rules:
            for pred in branch.when:
                if pred.op == "matches":
                    _check_pattern(pred.value)
        return table

    def execute(
        self,
        rule_source: str,
        facts: Mapping[str, Any],
        output_model: type[OutputT],
    ) -> OutputT:
        """Evaluate a rule and validate its result against ``output_model``.

        Rules are checked in order; the first branch whose ``when``
        predicates all hold applies its ``then`` values on top of the
        ``outputs`` defaults.  If no branch matches the defaults stand.
        """
        table = self.parse(rule_source)
        run = _Evaluation(
            facts,
            max_steps=self.max_steps,
            max_depth=self.max_depth,
            max_match_chars=self.max_match_chars,
        )

        outputs = dict(table.outputs)
        matched = None
        for index, branch in enumerate(table.rules):
            if all(run.check(pred) for pred in branch.when):
                outputs.update(branch.then)
                matched = branch.name or f"rules[{index}]"
                break

        resolved = {key: run.output_value(value) for key, value in outputs.items()}
        logger.debug(
            "%s rule matched %s in %d steps: %s",
            output_model.__name__, matched or "no branch", run.steps, resolved,
        )

        try:
            return output_model.model_validate(resolved)
        except PydanticValidationError as exc:
            raise ConfigurationError(_describe_output_error(output_model, exc)) from exc


def _describe_output_error(output_model: type[BaseModel], exc: PydanticValidationError) -> str:
    missing = [
        ".".join(str(part) for part in err["loc"])
        for err in exc.errors()
        if err["type"] == "missing"
    ]
    if missing:
        return f"{output_model.__name__} rule did not produce required output(s): {', '.join(missing)}"
    return f"{output_model.__name__} rule produced invalid output: {exc}"


def _repeats_at(pattern: str, pos: int) -> bool:
    """True if an unbounded or ranged quantifier starts at ``pos``."""
    if pos >= len(pattern):
        return False
    return pattern[pos] in "*+" or _COUNTED_REPEAT.match(pattern, pos) is not None


def _check_pattern(pattern: Any) -> None:
    """Validate a ``matches`` pattern when the rule is parsed.

    Besides compiling it, refuse a repeated group whose body already
    repeats, e.g. ``(a+)+`` or ``(\\w*,?){2,}``.  Those backtrack
    exponentially on a near-miss and no step count would stop them.
    """
    if not isinstance(pattern, str):
        raise EvaluationError(f"'matches' needs a string pattern, got {pattern!r}")
    try:
        re.compile(pattern)
    except re.error as exc:
        raise EvaluationError(f"Invalid regular expression {pattern!r}: {exc}") from exc

    # One flag per open group: does its body contain a quantifier?
    groups: list[bool] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            # Skip the character class; a leading ']' is literal
            i += 1
            if i < len(pattern) and pattern[i] == "^":
                i += 1
            if i < len(pattern) and pattern[i] == "]":
                i += 1
            while i < len(pattern) and pattern[i] != "]":
                i += 2 if pattern[i] == "\\" else 1
            i += 1
            continue
        if ch == "(":
            groups.append(False)
        elif ch == ")":
            inner = groups.pop() if groups else False
            if inner and _repeats_at(pattern, i + 1):
                raise EvaluationError(
                    f"Regular expression {pattern!r} nests repetition and could run unbounded"
                )
            if inner and groups:
                groups[-1] = True
        elif groups and _repeats_at(pattern, i):
            groups[-1] = True
        i += 1


class _Evaluation:
    """State of a single rule evaluation: the facts and the step counter."""

    def __init__(
        self,
        facts: Mapping[str, Any],
        *,
        max_steps: int,
        max_depth: int,
        max_match_chars: int,
    ) -> None:
        self.facts = facts
        self.max_steps = max_steps
        self.max_depth = max_depth
        self.max_match_chars = max_match_chars
        self.steps = 0

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise EvaluationError(f"Rule exceeded its budget of {self.max_steps} steps")

    # ------------------------------------------------------------------
    # Fact resolution
    # ------------------------------------------------------------------

    def resolve(self, path: Any) -> Any:
        """Walk a dotted fact path.  Returns ``_MISSING`` if any segment is absent."""
        if not isinstance(path, str) or not path:
            raise EvaluationError(f"Fact path must be a non-empty string, got {path!r}")
        segments = path.split(".")
        if len(segments) > self.max_depth:
            raise EvaluationError(f"Fact path {path!r} is deeper than {self.max_depth} segments")

        node: Any = self.facts
        for segment in segments:
            self._tick()
            if isinstance(node, Mapping):
                if segment not in node:
                    return _MISSING
                node = node[segment]
            elif isinstance(node, list):
                try:
                    index = int(segment)
                except ValueError:
                    return _MISSING
                if not -len(node) <= index < len(node):
                    return _MISSING
                node = node[index]
            else:
                return _MISSING
        return node

    def output_value(self, value: Any) -> Any:
        """Replace a ``{fact: path}`` reference with the fact's value."""
        if isinstance(value, dict) and set(value) == {"fact"}:
            resolved = self.resolve(value["fact"])
            if resolved is _MISSING:
                raise EvaluationError(f"Output references unknown fact {value['fact']!r}")
            return resolved
        return value

    # ------------------------------------------------------------------
    # Predicate evaluation
    # ------------------------------------------------------------------

    def check(self, pred: Predicate) -> bool:
        """Evaluate one predicate.

        A fact that is absent or null fails every operator except
        ``not_exists``, so rules never match on data that is not there.
        """
        self._tick()
        actual = self.resolve(pred.fact)
        absent = actual is _MISSING or actual is None
        if pred.op == "exists":
            return not absent
        if pred.op == "not_exists":
            return absent
        if absent:
            return False
        if pred.op == "matches":
            # Participant free text is unbounded; only its head is searched
            actual = str(actual)[: self.max_match_chars]
        try:
            return _compare(pred.op, actual, pred.value)
        except (TypeError, ValueError, IndexError, re.error) as exc:
            raise EvaluationError(
                f"Cannot apply {pred.op!r} to fact {pred.fact!r} with value {pred.value!r}: {exc}"
            ) from exc


def _compare(op: str, actual: Any, value: Any) -> bool:
    """Apply an operator to a fact and an expected value.

    Numeric operators compare as floats; a fact that is not numeric simply
    fails the comparison, while a non-numeric ``value`` is an authoring
    error and raises.
    """
    if op == "eq":
        return actual == value
    if op == "ne":
        return actual != value

    # --- Numeric comparisons ---
    if op in ("lt", "le", "gt", "ge", "between"):
        try:
            number = float(actual)
        except (TypeError, ValueError):
            return False

        if op == "lt":
            return number < float(value)
        if op == "le":
            return number <= float(value)
        if op == "gt":
            return number > float(value)
        if op == "ge":
            return number >= float(value)
        # between: value is [min, max]
        lo, hi = float(value[0]), float(value[1])
        return lo <= number <= hi

    # --- Membership of the fact in a list of values ---
    if op == "in":
        return actual in list(value)
    if op == "not_in":
        return actual not in list(value)

    # --- Collection / string membership ---
    if op == "contains":
        if isinstance(actual, list):
            return value in actual
        return str(value) in str(actual)

    if op == "not_contains":
        if isinstance(actual, list):
            return value not in actual
        return str(value) not in str(actual)

    if op == "contains_any":
        if isinstance(actual, list):
            return any(v in actual for v in value)
        text = str(actual)
        return any(str(v) in text for v in value)

    if op == "contains_all":
        if isinstance(actual, list):
            return all(v in actual for v in value)
        text = str(actual)
        return all(str(v) in text for v in value)

    if op == "matches":
        return bool(re.search(str(value), str(actual)))

    raise EvaluationError(f"Unknown predicate operator: {op}")
