"""ScreeningEngine tests with a mocked DB layer.

Uses the in-memory MockRepository and FakeDb from ``helpers.fakes`` so the
engine's sequencing (validation, locking, scoring, orchestration and the
savepoint around them) can be exercised without PostgreSQL.
"""

import logging
import uuid

import pytest

from conftest import (
    BRANCHING_RULE,
    COMPLETE_WHEN_DONE_RULE,
    CONTRADICTORY_RULE,
    CRISIS_RULE,
    SUM_SCORING_RULE,
    YES_NO,
)
from helpers.fakes import FailingNotifier
from screening_engine.engine import ScreeningEngine
from screening_engine.errors import ConfigurationError, IntegrityError, ValidationError
from screening_engine.models.session import CreateAnswer

NEVER_FINISH_RULE = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
"""


# =====================================================================
# Helpers
# =====================================================================


def _add_screening_a(mock_repo, scoring_rule=SUM_SCORING_RULE, options=YES_NO):
    return mock_repo.add_screening(
        "SCREEN-A",
        scoring_rule=scoring_rule,
        questions=[
            {"text": "Little interest or pleasure in doing things?", "options": options},
            {"text": "Feeling down or hopeless?", "options": options},
        ],
    )


def _add_screening_b(mock_repo):
    return mock_repo.add_screening(
        "SCREEN-B",
        scoring_rule=SUM_SCORING_RULE,
        questions=[{"text": "Feeling nervous or on edge?", "options": YES_NO}],
    )


async def _start(engine, db, flow, account):
    return await engine.create_screening_session(
        db,
        screening_flow_id=flow.id,
        target_account_id=account.id,
        created_by_account_id=account.id,
    )


async def _answer(engine, db, session_screening_id, question, options, account, text=None):
    """Submit one or more options (with optional free text) for a question."""
    if not isinstance(options, list):
        options = [options]
    return await engine.create_screening_answers(
        db,
        screening_session_screening_id=session_screening_id,
        screening_question_id=question.id,
        answers=[CreateAnswer(screening_answer_option_id=o.id, text=text) for o in options],
        created_by_account_id=account.id,
    )


async def _current_ss_id(engine, db, session_id):
    context = await engine.find_next_unanswered_screening_session_screening_context(db, session_id)
    return context.session_screening.id


# =====================================================================
# Session lifecycle
# =====================================================================


class TestSessionCreation:

    @pytest.mark.asyncio
    async def test_creates_session_with_initial_screening(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, flow_version = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)

        session_id = await _start(engine, mock_db, flow, account)

        session = mock_repo.sessions[session_id]
        assert session.screening_flow_version_id == flow_version.id
        assert session.completed is False
        assert session.crisis_indicated is False
        rows = await engine.find_screening_session_screenings(mock_db, session_id)
        assert [r.screening_order for r in rows] == [1], "New session must have exactly one screening"
        assert rows[0].screening_version_id == a.version.id
        assert rows[0].completed is False

    @pytest.mark.asyncio
    async def test_freezes_referenced_versions(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, flow_version = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)

        await _start(engine, mock_db, flow, account)

        assert flow_version.frozen_at is not None
        assert a.version.frozen_at is not None

    @pytest.mark.asyncio
    async def test_missing_ids_are_all_reported(self, engine, mock_db):
        with pytest.raises(ValidationError) as exc_info:
            await engine.create_screening_session(
                mock_db, screening_flow_id=None, target_account_id=None, created_by_account_id=None,
            )
        fields = {fe.field for fe in exc_info.value.field_errors}
        assert fields == {"screening_flow_id", "target_account_id", "created_by_account_id"}

    @pytest.mark.asyncio
    async def test_unknown_ids_are_invalid(self, engine, mock_db, mock_repo, account):
        with pytest.raises(ValidationError) as exc_info:
            await engine.create_screening_session(
                mock_db,
                screening_flow_id=uuid.uuid4(),
                target_account_id=uuid.uuid4(),
                created_by_account_id=account.id,
            )
        fields = {fe.field for fe in exc_info.value.field_errors}
        assert fields == {"screening_flow_id", "target_account_id"}
        assert not mock_repo.sessions

    @pytest.mark.asyncio
    async def test_flow_without_active_version_is_configuration_error(
        self, engine, mock_db, mock_repo, account,
    ):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        flow.active_screening_flow_version_id = None

        with pytest.raises(ConfigurationError):
            await _start(engine, mock_db, flow, account)
        assert not mock_repo.sessions

    @pytest.mark.asyncio
    async def test_sessions_by_flow_newest_first(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        other = mock_repo.add_account()

        first = await _start(engine, mock_db, flow, account)
        second = await _start(engine, mock_db, flow, account)
        await _start(engine, mock_db, flow, other)

        sessions = await engine.find_screening_sessions_by_flow(
            mock_db, screening_flow_id=flow.id, participant_account_id=account.id,
        )
        assert [s.id for s in sessions] == [second, first]


# =====================================================================
# Progression — read path
# =====================================================================


class TestNextQuestion:

    @pytest.mark.asyncio
    async def test_first_question_by_display_order(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)

        context = await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)

        assert context.question.id == a.questions[0].id
        assert [o.id for o in context.answer_options] == [o.id for o in a.options[0]]
        assert context.session_screening.screening_order == 1

    @pytest.mark.asyncio
    async def test_read_is_idempotent(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)

        first = await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)
        second = await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)

        assert first == second
        assert not mock_repo.answers

    @pytest.mark.asyncio
    async def test_unknown_or_missing_session_is_empty(self, engine, mock_db):
        assert await engine.find_next_unanswered_screening_session_screening_context(mock_db, None) is None
        assert await engine.find_next_unanswered_screening_session_screening_context(
            mock_db, uuid.uuid4(),
        ) is None

    @pytest.mark.asyncio
    async def test_stuck_session_is_integrity_error(self, engine, mock_db, mock_repo, account):
        """All questions answered but the flow never completes the session."""
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=NEVER_FINISH_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)
        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 0), account)

        with pytest.raises(IntegrityError):
            await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)


# =====================================================================
# Answer submission
# =====================================================================


class TestSingleScreeningFlow:

    @pytest.mark.asyncio
    async def test_answers_advance_then_complete_session(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        ids = await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 1), account)
        assert len(ids) == 1
        assert mock_repo.session_screenings[ss_id].completed is False
        context = await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)
        assert context.question.id == a.questions[1].id

        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 1), account)

        row = mock_repo.session_screenings[ss_id]
        assert row.completed is True
        assert row.score == 6
        session = await engine.find_screening_session(mock_db, session_id)
        assert session.completed is True
        assert session.completed_at is not None
        assert await engine.find_next_unanswered_screening_session_screening_context(
            mock_db, session_id,
        ) is None
        assert await engine.determine_destination(mock_db, session_id) == "completed"

    @pytest.mark.asyncio
    async def test_submission_locks_session_inside_savepoint(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)
        savepoints_before = mock_db.savepoints

        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)

        assert mock_repo.lock_calls == [session_id]
        assert mock_db.savepoints == savepoints_before + 1

    @pytest.mark.asyncio
    async def test_completed_session_rejects_answers(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)
        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)
        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 0), account)
        answers_before = len(mock_repo.answers)

        with pytest.raises(ValidationError) as exc_info:
            await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 1), account)

        assert "This screening session has already been completed." in exc_info.value.messages
        assert len(mock_repo.answers) == answers_before


class TestBranching:

    @pytest.mark.asyncio
    async def test_high_score_branches_to_next_screening(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        b = _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=BRANCHING_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 1), account)
        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 0), account)

        rows = await engine.find_screening_session_screenings(mock_db, session_id)
        assert [r.screening_order for r in rows] == [1, 2]
        assert rows[0].completed is True and rows[0].score == 3
        assert rows[1].screening_version_id == b.version.id
        assert rows[1].completed is False
        assert b.version.frozen_at is not None, "Branch target version must be frozen"

        context = await engine.find_next_unanswered_screening_session_screening_context(mock_db, session_id)
        assert context.question.id == b.questions[0].id
        assert (await engine.find_screening_session(mock_db, session_id)).completed is False

        await _answer(engine, mock_db, rows[1].id, b.questions[0], b.option(0, 0), account)
        assert (await engine.find_screening_session(mock_db, session_id)).completed is True

    @pytest.mark.asyncio
    async def test_low_score_completes_without_branching(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=BRANCHING_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)
        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 0), account)

        rows = await engine.find_screening_session_screenings(mock_db, session_id)
        assert len(rows) == 1
        assert (await engine.find_screening_session(mock_db, session_id)).completed is True

    @pytest.mark.asyncio
    async def test_rescoring_earlier_screening_as_incomplete_is_rejected(
        self, engine, mock_db, mock_repo, account,
    ):
        """Once a later screening exists, an earlier one may not fall back to in-progress."""
        scoring = """
outputs:
  completed: false
  score: {fact: total_score}
rules:
  - when:
      - {fact: all_answered, op: eq, value: true}
      - {fact: questions.0.answer_option.text, op: ne, value: Skip}
    then:
      completed: true
"""
        a = _add_screening_a(mock_repo, scoring_rule=scoring, options=[("No", 0), ("Yes", 3), ("Skip", 0)])
        _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=BRANCHING_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)
        await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 1), account)
        await _answer(engine, mock_db, ss_id, a.questions[1], a.option(1, 1), account)
        answers_before = len(mock_repo.answers)

        with pytest.raises(IntegrityError):
            await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 2), account)

        assert len(mock_repo.answers) == answers_before
        assert mock_repo.session_screenings[ss_id].completed is True


class TestValidation:

    @pytest.mark.asyncio
    async def test_cross_question_answer_rejected_without_writes(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ValidationError) as exc_info:
            await _answer(engine, mock_db, ss_id, a.questions[0], a.option(1, 1), account)

        assert exc_info.value.messages == ["You can only supply answers for the current question."]
        assert not mock_repo.answers
        assert mock_repo.session_screenings[ss_id].score == 1

    @pytest.mark.asyncio
    async def test_every_violation_is_reported(self, engine, mock_db):
        with pytest.raises(ValidationError) as exc_info:
            await engine.create_screening_answers(
                mock_db,
                screening_session_screening_id=None,
                screening_question_id=None,
                answers=[],
                created_by_account_id=None,
            )
        fields = {fe.field for fe in exc_info.value.field_errors}
        assert fields == {
            "screening_session_screening_id",
            "screening_question_id",
            "created_by_account_id",
            "answers",
        }

    @pytest.mark.asyncio
    async def test_option_ids_checked_without_a_question(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        for question_id in (None, uuid.uuid4()):
            with pytest.raises(ValidationError) as exc_info:
                await engine.create_screening_answers(
                    mock_db,
                    screening_session_screening_id=ss_id,
                    screening_question_id=question_id,
                    answers=[
                        CreateAnswer(screening_answer_option_id=uuid.uuid4()),
                        CreateAnswer(screening_answer_option_id=None),
                    ],
                    created_by_account_id=account.id,
                )
            fields = {fe.field for fe in exc_info.value.field_errors}
            assert fields == {
                "screening_question_id",
                "answers[0].screening_answer_option_id",
                "answers[1].screening_answer_option_id",
            }
        assert not mock_repo.answers

    @pytest.mark.asyncio
    async def test_single_select_accepts_one_answer(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ValidationError) as exc_info:
            await _answer(engine, mock_db, ss_id, a.questions[0], a.options[0], account)

        assert [fe.field for fe in exc_info.value.field_errors] == ["answers"]

    @pytest.mark.asyncio
    async def test_question_from_another_screening_rejected(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        b = _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ValidationError) as exc_info:
            await _answer(engine, mock_db, ss_id, b.questions[0], b.option(0, 0), account)

        assert "screening_question_id" in {fe.field for fe in exc_info.value.field_errors}

    @pytest.mark.asyncio
    async def test_multi_select_records_every_option(self, engine, mock_db, mock_repo, account):
        s = mock_repo.add_screening(
            "SYMPTOMS",
            scoring_rule=SUM_SCORING_RULE,
            questions=[{
                "text": "Which of these have you felt?",
                "answer_format": "multi_select",
                "options": [("Worry", 1), ("Sadness", 1), ("Anger", 1)],
            }],
        )
        flow, _ = mock_repo.add_flow(initial=s.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        ids = await _answer(engine, mock_db, ss_id, s.questions[0], [s.option(0, 0), s.option(0, 2)], account)

        assert len(ids) == 2
        assert mock_repo.session_screenings[ss_id].score == 2
        assert mock_repo.session_screenings[ss_id].completed is True


class TestFreeText:

    def _free_text_flow(self, mock_repo, content_hint):
        s = mock_repo.add_screening(
            "CONTACT",
            scoring_rule=SUM_SCORING_RULE,
            questions=[{
                "text": "How can we reach you?",
                "answer_format": "free_text",
                "content_hint": content_hint,
                "options": [("Contact", 0)],
            }],
        )
        flow, _ = mock_repo.add_flow(initial=s.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        return s, flow

    @pytest.mark.asyncio
    async def test_phone_number_stored_as_e164(self, engine, mock_db, mock_repo, account):
        s, flow = self._free_text_flow(mock_repo, "phone_number")
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        [answer_id] = await _answer(
            engine, mock_db, ss_id, s.questions[0], s.option(0, 0), account, text=" (650) 253-0000 ",
        )

        assert mock_repo.answers[answer_id].text == "+16502530000"

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, engine, mock_db, mock_repo, account):
        s, flow = self._free_text_flow(mock_repo, "email_address")
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ValidationError) as exc_info:
            await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 0), account, text="not-an-email")

        [error] = exc_info.value.field_errors
        assert error.field == "answers[0].text"
        assert error.message == "Please enter a valid email address."

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self, engine, mock_db, mock_repo, account):
        s, flow = self._free_text_flow(mock_repo, "none")
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ValidationError):
            await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 0), account, text="   ")
        assert not mock_repo.answers


class TestReanswer:

    @pytest.mark.asyncio
    async def test_reanswer_appends_and_rescores(self, engine, mock_db, mock_repo, account):
        a = _add_screening_a(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        [first_id] = await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 1), account)
        assert mock_repo.session_screenings[ss_id].score == 3

        [second_id] = await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)

        assert first_id in mock_repo.answers, "Ledger rows are never removed"
        assert mock_repo.answers[second_id].answer_batch == mock_repo.answers[first_id].answer_batch + 1
        current = await engine.find_current_screening_answers(
            mock_db, screening_session_screening_id=ss_id, screening_question_id=a.questions[0].id,
        )
        assert [c.id for c in current] == [second_id]
        assert mock_repo.session_screenings[ss_id].score == 1


class TestAtomicity:

    @pytest.mark.asyncio
    async def test_contradictory_orchestration_rolls_back(self, engine, mock_db, mock_repo, account):
        s = mock_repo.add_screening(
            "SCREEN-A",
            scoring_rule=SUM_SCORING_RULE,
            questions=[{"text": "Only question", "options": YES_NO}],
        )
        _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=s.screening, orchestration_rule=CONTRADICTORY_RULE)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ConfigurationError):
            await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 1), account)

        assert not mock_repo.answers
        row = mock_repo.session_screenings[ss_id]
        assert row.completed is False and row.score == 0
        assert mock_repo.sessions[session_id].completed is False
        assert len(await engine.find_screening_session_screenings(mock_db, session_id)) == 1
        assert mock_db.rollbacks == 1

    @pytest.mark.asyncio
    async def test_unknown_next_screening_is_configuration_error(self, engine, mock_db, mock_repo, account):
        rule = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: null
rules:
  - when:
      - {fact: current.completed, op: eq, value: true}
    then:
      next_screening_id: 00000000-0000-0000-0000-000000000001
"""
        s = mock_repo.add_screening(
            "SCREEN-A", scoring_rule=SUM_SCORING_RULE,
            questions=[{"text": "Only question", "options": YES_NO}],
        )
        flow, _ = mock_repo.add_flow(initial=s.screening, orchestration_rule=rule)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ConfigurationError):
            await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 0), account)
        assert not mock_repo.answers

    @pytest.mark.asyncio
    async def test_advancing_past_incomplete_screening_is_rejected(
        self, engine, mock_db, mock_repo, account,
    ):
        rule = """
outputs:
  completed: false
  crisis_indicated: false
  next_screening_id: {fact: screenings_by_name.SCREEN-B.screening_id}
"""
        a = _add_screening_a(mock_repo)
        _add_screening_b(mock_repo)
        flow, _ = mock_repo.add_flow(initial=a.screening, orchestration_rule=rule)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        with pytest.raises(ConfigurationError):
            await _answer(engine, mock_db, ss_id, a.questions[0], a.option(0, 0), account)
        assert len(mock_repo.session_screenings) == 1


class TestCrisis:

    def _crisis_flow(self, mock_repo):
        options = [("Not at all", 0), ("Several days", 1, True)]
        s = mock_repo.add_screening(
            "PHQ",
            scoring_rule=SUM_SCORING_RULE,
            questions=[
                {"text": "Thoughts that you would be better off dead?", "options": options},
                {"text": "Trouble sleeping?", "options": YES_NO},
                {"text": "Poor appetite?", "options": YES_NO},
            ],
        )
        flow, _ = mock_repo.add_flow(initial=s.screening, orchestration_rule=CRISIS_RULE)
        return s, flow

    @pytest.mark.asyncio
    async def test_crisis_notified_exactly_once(self, engine, mock_db, mock_repo, account, notifier):
        s, flow = self._crisis_flow(mock_repo)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 1), account)
        session = await engine.find_screening_session(mock_db, session_id)
        assert session.crisis_indicated is True
        assert session.crisis_indicated_at is not None
        assert session.completed is False
        assert notifier.calls == [], "Nothing is sent before the transaction commits"

        await engine.dispatch_crisis_notifications(mock_db)
        assert len(notifier.calls) == 1
        assert notifier.calls[0][0] == session_id

        await _answer(engine, mock_db, ss_id, s.questions[1], s.option(1, 0), account)
        await _answer(engine, mock_db, ss_id, s.questions[2], s.option(2, 0), account)
        await engine.dispatch_crisis_notifications(mock_db)

        assert len(notifier.calls) == 1, "Crisis must be dispatched once per session"
        session = await engine.find_screening_session(mock_db, session_id)
        assert session.completed is True
        assert await engine.determine_destination(mock_db, session_id) == "crisis"

    @pytest.mark.asyncio
    async def test_crisis_flag_is_sticky(self, engine, mock_db, mock_repo, account, notifier):
        s, flow = self._crisis_flow(mock_repo)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 1), account)
        # Re-answer without the crisis option; the rule no longer indicates crisis
        await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 0), account)
        await engine.dispatch_crisis_notifications(mock_db)

        assert mock_repo.sessions[session_id].crisis_indicated is True
        assert len(notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_failing_notifier_keeps_submission(self, mock_db, mock_repo, account, caplog):
        s, flow = self._crisis_flow(mock_repo)
        engine = ScreeningEngine(repository=mock_repo, crisis_notifier=FailingNotifier())
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 1), account)
        with caplog.at_level(logging.ERROR, logger="screening_engine.engine"):
            await engine.dispatch_crisis_notifications(mock_db)

        assert "Crisis notification failed" in caplog.text
        assert mock_repo.sessions[session_id].crisis_indicated is True
        assert mock_repo.session_screenings[ss_id].score == 1
        assert len(await mock_repo.list_current_answers(mock_db, ss_id)) == 1
        assert mock_db.info.get("screening_engine.pending_crisis_notifications") is None

    @pytest.mark.asyncio
    async def test_discarded_notifications_are_never_sent(self, engine, mock_db, mock_repo, account, notifier):
        s, flow = self._crisis_flow(mock_repo)
        session_id = await _start(engine, mock_db, flow, account)
        ss_id = await _current_ss_id(engine, mock_db, session_id)

        await _answer(engine, mock_db, ss_id, s.questions[0], s.option(0, 1), account)
        engine.discard_crisis_notifications(mock_db)
        await engine.dispatch_crisis_notifications(mock_db)

        assert notifier.calls == []


# =====================================================================
# Catalog
# =====================================================================


class TestCatalog:

    @pytest.mark.asyncio
    async def test_lookups_return_projections_or_none(self, engine, mock_db, mock_repo):
        a = _add_screening_a(mock_repo)
        flow, flow_version = mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)

        screening = await engine.catalog.find_screening(mock_db, a.screening.id)
        assert screening.name == "SCREEN-A"
        assert screening.active_screening_version_id == a.version.id
        question = await engine.catalog.find_screening_question(mock_db, a.questions[1].id)
        assert question.display_order == 2
        assert question.answer_format == "single_select"
        option = await engine.catalog.find_screening_answer_option(mock_db, a.option(0, 1).id)
        assert option.score == 3
        assert (await engine.catalog.find_screening_flow(mock_db, flow.id)).name == "Intake"
        assert (await engine.catalog.find_screening_flow_version(mock_db, flow_version.id)).version_number == 1

        assert await engine.catalog.find_screening(mock_db, None) is None
        assert await engine.catalog.find_screening_version(mock_db, uuid.uuid4()) is None
        assert await engine.catalog.find_screening_flow_versions(mock_db, None) == []

    @pytest.mark.asyncio
    async def test_institution_listings(self, engine, mock_db, mock_repo):
        b = _add_screening_b(mock_repo)
        a = _add_screening_a(mock_repo)
        mock_repo.add_screening(
            "ELSEWHERE", scoring_rule=SUM_SCORING_RULE,
            questions=[{"text": "Q", "options": YES_NO}], institution_id="inst-2",
        )
        mock_repo.add_flow(initial=a.screening, orchestration_rule=COMPLETE_WHEN_DONE_RULE)

        screenings = await engine.catalog.list_screenings_by_institution(mock_db, "inst-1")
        assert [s.id for s in screenings] == [a.screening.id, b.screening.id]
        flows = await engine.catalog.list_screening_flows_by_institution(mock_db, "inst-1")
        assert [f.name for f in flows] == ["Intake"]
        assert await engine.catalog.list_screening_flows_by_institution(mock_db, "inst-2") == []
