"""ScoringEvaluator — runs a screening version's scoring rule.

Pure: takes the rule text, the version's questions with options and the
session screening's current answers, and returns a :class:`ScoringOutput`.
The caller persists ``completed`` and ``score``.
"""

from __future__ import annotations

import logging
from typing import Any

from screening_db.models.enums import AnswerFormat

from screening_engine.errors import IntegrityError
from screening_engine.evaluator import RuleEvaluator
from screening_engine.facts import QuestionWithOptions, build_screening_facts
from screening_engine.models.outputs import ScoringOutput

logger = logging.getLogger(__name__)


class ScoringEvaluator:
    def __init__(self, rules: RuleEvaluator | None = None) -> None:
        self._rules = rules or RuleEvaluator()

    def build_facts(
        self,
        questions: list[QuestionWithOptions],
        answers: list[Any],
    ) -> dict[str, Any]:
        facts = build_screening_facts(questions, answers)
        self._check_answer_count(questions, facts)
        return facts

    def evaluate(
        self,
        rule_source: str,
        questions: list[QuestionWithOptions],
        answers: list[Any],
    ) -> ScoringOutput:
        facts = self.build_facts(questions, answers)
        return self._rules.execute(rule_source, facts, ScoringOutput)

    @staticmethod
    def _check_answer_count(
        questions: list[QuestionWithOptions], facts: dict[str, Any]
    ) -> None:
        """Current answers may never outnumber questions.

        Every selection on a multi-select question after the first is
        ignored for this count.
        """
        multi_select = {
            str(qwo.question.id)
            for qwo in questions
            if AnswerFormat(qwo.question.answer_format) == AnswerFormat.MULTI_SELECT
        }
        counted = 0
        seen_multi: set[str] = set()
        for answer in facts["answers"]:
            question_id = answer["question_id"]
            if question_id in multi_select:
                if question_id in seen_multi:
                    continue
                seen_multi.add(question_id)
            counted += 1

        if counted > facts["question_count"]:
            logger.error(
                "Scoring input has %d answers for %d questions",
                counted, facts["question_count"],
            )
            raise IntegrityError(
                f"There are {counted} answers but only {facts['question_count']} questions"
            )
