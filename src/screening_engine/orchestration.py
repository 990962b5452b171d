"""OrchestrationEvaluator — runs a flow version's orchestration rule.

The rule sees the whole session: every visited screening in order with
its score, completion and current answers, plus the institution's
screenings by name so it can name the next one.

Orchestration facts::

    session:            {session_id, completed, crisis_indicated}
    screening_count:    number of visited screenings
    screenings:         [per-screening facts + session_screening_id,
                         screening_id, screening_name, screening_version_id,
                         screening_order, completed, score]
    current:            the last entry of ``screenings``
    session_screenings_by_name: {name: latest visit of that screening}
    screenings_by_name: {name: {screening_id, name}} for the institution
    crisis_indicated_by_answer: any current answer in the session flags crisis
    total_score:        sum of persisted scores over visited screenings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from screening_engine.errors import ConfigurationError
from screening_engine.evaluator import RuleEvaluator
from screening_engine.facts import QuestionWithOptions, build_screening_facts
from screening_engine.models.outputs import OrchestrationOutput


@dataclass
class SessionScreeningRecord:
    """A visited screening joined with its catalog rows and current answers."""

    session_screening: Any
    screening: Any
    questions: list[QuestionWithOptions] = field(default_factory=list)
    answers: list[Any] = field(default_factory=list)


class OrchestrationEvaluator:
    def __init__(self, rules: RuleEvaluator | None = None) -> None:
        self._rules = rules or RuleEvaluator()

    def build_facts(
        self,
        *,
        session: Any,
        records: list[SessionScreeningRecord],
        screenings: list[Any],
    ) -> dict[str, Any]:
        visited: list[dict[str, Any]] = []
        for record in records:
            row = record.session_screening
            facts = build_screening_facts(record.questions, record.answers)
            facts.update({
                "session_screening_id": str(row.id),
                "screening_id": str(record.screening.id),
                "screening_name": record.screening.name,
                "screening_version_id": str(row.screening_version_id),
                "screening_order": row.screening_order,
                "completed": row.completed,
                "score": row.score,
            })
            visited.append(facts)

        return {
            "session": {
                "session_id": str(session.id),
                "completed": session.completed,
                "crisis_indicated": session.crisis_indicated,
            },
            "screening_count": len(visited),
            "screenings": visited,
            "current": visited[-1] if visited else None,
            "session_screenings_by_name": {f["screening_name"]: f for f in visited},
            "screenings_by_name": {
                s.name: {"screening_id": str(s.id), "name": s.name} for s in screenings
            },
            "crisis_indicated_by_answer": any(f["crisis_indicated_by_answer"] for f in visited),
            "total_score": sum(f["score"] for f in visited),
        }

    def evaluate(
        self,
        rule_source: str,
        *,
        session: Any,
        records: list[SessionScreeningRecord],
        screenings: list[Any],
    ) -> OrchestrationOutput:
        facts = self.build_facts(session=session, records=records, screenings=screenings)
        output = self._rules.execute(rule_source, facts, OrchestrationOutput)
        if output.completed and output.next_screening_id is not None:
            raise ConfigurationError(
                "Orchestration rule marked the session completed but also "
                f"named next screening {output.next_screening_id}"
            )
        return output
