"""ScoringEvaluator and fact-builder tests.

Builds rows with the dataclasses from ``helpers.fakes`` and runs the
scoring evaluator directly, without an engine or repository.
"""

import uuid

import pytest

from conftest import SUM_SCORING_RULE
from helpers.fakes import MockAnswerOption, MockAnswerRow, MockQuestion
from screening_engine.errors import ConfigurationError, IntegrityError
from screening_engine.facts import QuestionWithOptions, build_screening_facts
from screening_engine.scoring import ScoringEvaluator

VERSION_ID = uuid.uuid4()
ACCOUNT_ID = uuid.uuid4()
SESSION_SCREENING_ID = uuid.uuid4()


def _question(order, options, answer_format="single_select"):
    question = MockQuestion(
        screening_version_id=VERSION_ID,
        question_text=f"Question {order}",
        display_order=order,
        answer_format=answer_format,
    )
    built = [
        MockAnswerOption(
            screening_question_id=question.id,
            answer_option_text=text,
            display_order=i,
            score=score,
            indicates_crisis=crisis,
        )
        for i, (text, score, crisis) in enumerate(options, start=1)
    ]
    return QuestionWithOptions(question, built)


def _answer(option, text=None, batch=1):
    return MockAnswerRow(
        screening_answer_option_id=option.id,
        screening_session_screening_id=SESSION_SCREENING_ID,
        created_by_account_id=ACCOUNT_ID,
        answer_batch=batch,
        text=text,
    )


FREQUENCY = [
    ("Not at all", 0, False),
    ("Several days", 1, False),
    ("More than half the days", 2, False),
    ("Nearly every day", 3, True),
]


@pytest.fixture
def questions():
    return [_question(1, FREQUENCY), _question(2, FREQUENCY), _question(3, FREQUENCY)]


class TestScreeningFacts:

    def test_unanswered(self, questions):
        facts = build_screening_facts(questions, [])

        assert facts["question_count"] == 3
        assert facts["answer_count"] == 0
        assert facts["all_answered"] is False
        assert facts["total_score"] == 0
        assert facts["crisis_indicated_by_answer"] is False
        assert [q["answered"] for q in facts["questions"]] == [False, False, False]
        assert facts["questions"][0]["answer_option"] is None

    def test_answered_question_shape(self, questions):
        option = questions[1].options[2]
        facts = build_screening_facts(questions, [_answer(option)])

        q = facts["questions"][1]
        assert q["answered"] is True
        assert q["score"] == 2
        assert q["answer_format"] == "single_select"
        assert q["answer_option"]["text"] == "More than half the days"
        assert q["selected_answer_option_ids"] == [str(option.id)]
        assert [o["selected"] for o in q["answer_options"]] == [False, False, True, False]
        assert facts["answered_question_count"] == 1

    def test_crisis_option_flags_screening(self, questions):
        facts = build_screening_facts(questions, [_answer(questions[2].options[3])])

        assert facts["crisis_indicated_by_answer"] is True
        assert facts["questions"][2]["crisis_indicated_by_answer"] is True

    def test_answer_outside_version_is_integrity_error(self, questions):
        stranger = _question(1, FREQUENCY).options[0]
        with pytest.raises(IntegrityError):
            build_screening_facts(questions, [_answer(stranger)])


class TestScoringEvaluator:

    def test_partial_answers_are_incomplete(self, questions):
        answers = [_answer(questions[0].options[3]), _answer(questions[1].options[1])]
        result = ScoringEvaluator().evaluate(SUM_SCORING_RULE, questions, answers)

        assert result.completed is False
        assert result.score == 4

    def test_all_answered_completes(self, questions):
        answers = [_answer(qwo.options[2]) for qwo in questions]
        result = ScoringEvaluator().evaluate(SUM_SCORING_RULE, questions, answers)

        assert result.completed is True
        assert result.score == 6

    def test_threshold_on_single_question(self, questions):
        # PHQ-9 style: item 9 above zero forces a specific score band
        rule = """
outputs:
  completed: false
  score: {fact: total_score}
rules:
  - when:
      - {fact: all_answered, op: eq, value: true}
      - {fact: questions.-1.answer_option.score, op: gt, value: 0}
    then:
      completed: true
      score: 99
  - when:
      - {fact: all_answered, op: eq, value: true}
    then:
      completed: true
"""
        answers = [_answer(questions[0].options[0]), _answer(questions[1].options[0]),
                   _answer(questions[2].options[1])]
        assert ScoringEvaluator().evaluate(rule, questions, answers).score == 99

    def test_more_answers_than_questions_is_integrity_error(self, questions):
        answers = [_answer(questions[0].options[0]), _answer(questions[0].options[1]),
                   _answer(questions[1].options[0]), _answer(questions[2].options[0])]
        with pytest.raises(IntegrityError):
            ScoringEvaluator().evaluate(SUM_SCORING_RULE, questions, answers)

    def test_multi_select_counts_once(self):
        questions = [
            _question(1, [("Worry", 1, False), ("Sadness", 1, False), ("Anger", 1, False)],
                      answer_format="multi_select"),
        ]
        answers = [_answer(o) for o in questions[0].options]
        result = ScoringEvaluator().evaluate(SUM_SCORING_RULE, questions, answers)

        assert result.completed is True
        assert result.score == 3

    def test_non_integer_score_is_configuration_error(self, questions):
        rule = """
outputs:
  completed: false
  score: {fact: questions.0.answer_option.text}
"""
        with pytest.raises(ConfigurationError):
            ScoringEvaluator().evaluate(rule, questions, [_answer(questions[0].options[0])])
