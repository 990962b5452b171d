"""Fact builders — turn persisted rows into the plain dictionaries rules see.

Facts contain only JSON-like values (str, int, bool, None, list, dict);
ids are rendered as strings.  The same per-screening shape is used as the
top level of scoring facts and for every entry of orchestration facts'
``screenings`` list::

    question_count, answer_count, answered_question_count, all_answered,
    total_score, crisis_indicated_by_answer,
    questions: [{question_id, question_text, answer_format, content_hint,
                 display_order, answered, score, crisis_indicated_by_answer,
                 selected_answer_option_ids, answer_option, answer,
                 answer_options: [{answer_option_id, text, score,
                                   indicates_crisis, selected}]}],
    answers:   [{answer_id, answer_option_id, question_id, text, score,
                 indicates_crisis}]

``answer_option`` / ``answer`` hold the first current selection of a
question (or None) so single-select rules can write
``questions.8.answer_option.score``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from screening_db.models.enums import AnswerFormat, ContentHint

from screening_engine.errors import IntegrityError

logger = logging.getLogger(__name__)


@dataclass
class QuestionWithOptions:
    """A question row and its answer option rows, both in display order."""

    question: Any
    options: list[Any] = field(default_factory=list)


def _option_facts(option: Any, selected: bool) -> dict[str, Any]:
    return {
        "answer_option_id": str(option.id),
        "text": option.answer_option_text,
        "score": option.score,
        "indicates_crisis": option.indicates_crisis,
        "selected": selected,
    }


def build_screening_facts(
    questions: list[QuestionWithOptions],
    answers: list[Any],
) -> dict[str, Any]:
    """Build the per-screening fact block from questions and current answers.

    Raises :class:`IntegrityError` if an answer references an option that
    does not belong to any of ``questions``.
    """
    option_lookup: dict[Any, tuple[Any, Any]] = {}
    for qwo in questions:
        for option in qwo.options:
            option_lookup[option.id] = (qwo.question, option)

    answers_by_question: dict[Any, list[tuple[Any, Any]]] = {}
    answer_facts: list[dict[str, Any]] = []
    for answer in answers:
        found = option_lookup.get(answer.screening_answer_option_id)
        if found is None:
            logger.error(
                "Answer %s references option %s outside its screening version",
                answer.id, answer.screening_answer_option_id,
            )
            raise IntegrityError(
                f"Answer {answer.id} references an answer option outside its screening version"
            )
        question, option = found
        answers_by_question.setdefault(question.id, []).append((answer, option))
        answer_facts.append({
            "answer_id": str(answer.id),
            "answer_option_id": str(option.id),
            "question_id": str(question.id),
            "text": answer.text,
            "score": option.score,
            "indicates_crisis": option.indicates_crisis,
        })

    question_facts: list[dict[str, Any]] = []
    for qwo in questions:
        question = qwo.question
        selected = answers_by_question.get(question.id, [])
        selected_ids = {option.id for _, option in selected}
        first = selected[0] if selected else None
        question_facts.append({
            "question_id": str(question.id),
            "question_text": question.question_text,
            "answer_format": AnswerFormat(question.answer_format).value,
            "content_hint": ContentHint(question.content_hint).value,
            "display_order": question.display_order,
            "answered": bool(selected),
            "score": sum(option.score for _, option in selected),
            "crisis_indicated_by_answer": any(option.indicates_crisis for _, option in selected),
            "selected_answer_option_ids": [str(option.id) for _, option in selected],
            "answer_option": _option_facts(first[1], True) if first else None,
            "answer": {"answer_id": str(first[0].id), "text": first[0].text} if first else None,
            "answer_options": [
                _option_facts(option, option.id in selected_ids) for option in qwo.options
            ],
        })

    answered = sum(1 for q in question_facts if q["answered"])
    return {
        "question_count": len(questions),
        "answer_count": len(answers),
        "answered_question_count": answered,
        "all_answered": answered == len(questions),
        "total_score": sum(a["score"] for a in answer_facts),
        "crisis_indicated_by_answer": any(a["indicates_crisis"] for a in answer_facts),
        "questions": question_facts,
        "answers": answer_facts,
    }
