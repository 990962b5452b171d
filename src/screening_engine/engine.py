"""ScreeningEngine — session lifecycle, answer submission and progression.

Stateless engine pattern: each call loads what it needs from the database
through the caller's ``AsyncSession``, applies changes and returns.  No
in-memory state is kept between calls.  The caller (typically a FastAPI
dependency) owns the outer transaction and commits it.

Answer submission is one unit of work inside ``db.begin_nested()``:

    validate (aggregated) -> lock session row -> append answer batch
    -> score the answered screening -> persist score
    -> orchestrate over the whole session -> apply effects

Effects of orchestration are applied in this order: start the next
screening, raise the crisis flag, complete the session.  If anything
raises, the savepoint rolls back and no answer, score or flag is kept.

A newly raised crisis flag is not announced from inside the transaction.
The notification is queued on the session (``db.info``) and sent by
:meth:`ScreeningEngine.dispatch_crisis_notifications` once the caller has
committed; after a rollback the caller drops it with
:meth:`ScreeningEngine.discard_crisis_notifications`.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.models.enums import AnswerFormat, ContentHint
from screening_db.repository import ScreeningRepository

from screening_engine.catalog import ScreeningCatalog
from screening_engine.constants import DESTINATION_COMPLETED, DESTINATION_CRISIS
from screening_engine.errors import ConfigurationError, IntegrityError, ValidationError
from screening_engine.evaluator import RuleEvaluator
from screening_engine.facts import QuestionWithOptions
from screening_engine.interfaces import (
    AccountDirectory,
    CrisisNotifier,
    LoggingCrisisNotifier,
    RepositoryAccountDirectory,
)
from screening_engine.models.catalog import ScreeningAnswerOptionInfo, ScreeningQuestionInfo
from screening_engine.models.session import (
    CreateAnswer,
    Destination,
    ScreeningAnswerInfo,
    ScreeningSessionInfo,
    ScreeningSessionScreeningContext,
    ScreeningSessionScreeningInfo,
)
from screening_engine.normalizer import normalize_free_text
from screening_engine.orchestration import OrchestrationEvaluator, SessionScreeningRecord
from screening_engine.scoring import ScoringEvaluator

logger = logging.getLogger(__name__)

# Key in ``AsyncSession.info`` for crisis notifications waiting on commit
_PENDING_CRISIS_KEY = "screening_engine.pending_crisis_notifications"

_INVALID_HINTED_TEXT = {
    ContentHint.PHONE_NUMBER: "Please enter a valid phone number.",
    ContentHint.EMAIL_ADDRESS: "Please enter a valid email address.",
}


def _trim_to_none(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    return text or None


class ScreeningEngine:
    """Runs screening sessions against the versioned catalog.

    Args:
        repository: persistence gateway; defaults to :class:`ScreeningRepository`
        account_directory: resolves account ids; defaults to the local table
        crisis_notifier: receives crisis indications; defaults to the log
        rule_evaluator: sandbox shared by scoring and orchestration
    """

    def __init__(
        self,
        *,
        repository: ScreeningRepository | None = None,
        account_directory: AccountDirectory | None = None,
        crisis_notifier: CrisisNotifier | None = None,
        rule_evaluator: RuleEvaluator | None = None,
    ) -> None:
        self._repo = repository or ScreeningRepository()
        self.catalog = ScreeningCatalog(self._repo)
        self._accounts = account_directory or RepositoryAccountDirectory(self._repo)
        self._notifier = crisis_notifier or LoggingCrisisNotifier()
        rules = rule_evaluator or RuleEvaluator()
        self._scoring = ScoringEvaluator(rules)
        self._orchestration = OrchestrationEvaluator(rules)

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def create_screening_session(
        self,
        db: AsyncSession,
        *,
        screening_flow_id: uuid.UUID | None,
        target_account_id: uuid.UUID | None,
        created_by_account_id: uuid.UUID | None,
    ) -> uuid.UUID:
        """Start a session on the flow's active version.

        The session is created together with its first screening (order 1,
        the flow version's initial screening at its active version), and
        both versions are frozen.  Returns the new session id.
        """
        errors = ValidationError()
        flow = None
        if screening_flow_id is None:
            errors.add_field("screening_flow_id", "Screening flow ID is required.")
        else:
            flow = await self._repo.get_screening_flow(db, screening_flow_id)
            if flow is None:
                errors.add_field("screening_flow_id", "Screening flow ID is invalid.")
        await self._check_account(db, errors, "target_account_id", target_account_id)
        await self._check_account(db, errors, "created_by_account_id", created_by_account_id)
        errors.raise_if_any()

        async with db.begin_nested():
            flow_version = await self._active_flow_version(db, flow)
            initial = await self._repo.get_screening(db, flow_version.initial_screening_id)
            if initial is None:
                raise ConfigurationError(
                    f"Flow version {flow_version.id} names unknown initial screening "
                    f"{flow_version.initial_screening_id}"
                )
            screening_version = await self._active_screening_version(db, initial)

            session = await self._repo.create_session(
                db,
                screening_flow_version_id=flow_version.id,
                target_account_id=target_account_id,
                created_by_account_id=created_by_account_id,
            )
            await self._repo.freeze_screening_flow_version(db, flow_version)
            await self._repo.freeze_screening_version(db, screening_version)
            await self._repo.create_session_screening(
                db,
                screening_session_id=session.id,
                screening_version_id=screening_version.id,
                screening_order=1,
            )

        logger.info(
            "Created screening session %s on flow version %s (initial screening %s)",
            session.id, flow_version.id, initial.name,
        )
        return session.id

    async def find_screening_session(
        self, db: AsyncSession, screening_session_id: uuid.UUID | None
    ) -> ScreeningSessionInfo | None:
        if screening_session_id is None:
            return None
        row = await self._repo.get_session(db, screening_session_id)
        return ScreeningSessionInfo.model_validate(row) if row is not None else None

    async def find_screening_sessions_by_flow(
        self,
        db: AsyncSession,
        *,
        screening_flow_id: uuid.UUID | None,
        participant_account_id: uuid.UUID | None,
    ) -> list[ScreeningSessionInfo]:
        """Sessions of any version of a flow the participant took or started, newest first."""
        if screening_flow_id is None or participant_account_id is None:
            return []
        rows = await self._repo.list_sessions_by_flow(db, screening_flow_id, participant_account_id)
        return [ScreeningSessionInfo.model_validate(r) for r in rows]

    async def find_screening_session_screening(
        self, db: AsyncSession, screening_session_screening_id: uuid.UUID | None
    ) -> ScreeningSessionScreeningInfo | None:
        if screening_session_screening_id is None:
            return None
        row = await self._repo.get_session_screening(db, screening_session_screening_id)
        return ScreeningSessionScreeningInfo.model_validate(row) if row is not None else None

    async def find_screening_session_screenings(
        self, db: AsyncSession, screening_session_id: uuid.UUID | None
    ) -> list[ScreeningSessionScreeningInfo]:
        if screening_session_id is None:
            return []
        rows = await self._repo.list_session_screenings(db, screening_session_id)
        return [ScreeningSessionScreeningInfo.model_validate(r) for r in rows]

    async def determine_destination(
        self, db: AsyncSession, screening_session_id: uuid.UUID | None
    ) -> Destination | None:
        """Where the participant should go next, if the session has ended or escalated."""
        if screening_session_id is None:
            return None
        session = await self._repo.get_session(db, screening_session_id)
        if session is None:
            return None
        if session.crisis_indicated:
            return DESTINATION_CRISIS
        if session.completed:
            return DESTINATION_COMPLETED
        return None

    # ==================================================================
    # Progression — read path
    # ==================================================================

    async def find_next_unanswered_screening_session_screening_context(
        self, db: AsyncSession, screening_session_id: uuid.UUID | None
    ) -> ScreeningSessionScreeningContext | None:
        """The first question of the current screening without a current answer.

        Returns None for unknown or completed sessions.  An incomplete
        session whose current screening has no unanswered question is an
        integrity failure.
        """
        if screening_session_id is None:
            return None
        session = await self._repo.get_session(db, screening_session_id)
        if session is None or session.completed:
            return None

        current = await self._repo.get_current_session_screening(db, session.id)
        if current is None:
            raise self._integrity(f"Screening session {session.id} has no screenings")

        questions = await self._questions_with_options(db, current.screening_version_id)
        answers = await self._repo.list_current_answers(db, current.id)
        answered_option_ids = {a.screening_answer_option_id for a in answers}

        for qwo in questions:
            if not any(option.id in answered_option_ids for option in qwo.options):
                return ScreeningSessionScreeningContext(
                    session_screening=ScreeningSessionScreeningInfo.model_validate(current),
                    question=ScreeningQuestionInfo.model_validate(qwo.question),
                    answer_options=[
                        ScreeningAnswerOptionInfo.model_validate(o) for o in qwo.options
                    ],
                )

        raise self._integrity(
            f"Screening session {session.id} is not completed but session screening "
            f"{current.id} has no unanswered question"
        )

    async def find_current_screening_answers(
        self,
        db: AsyncSession,
        *,
        screening_session_screening_id: uuid.UUID | None,
        screening_question_id: uuid.UUID | None,
    ) -> list[ScreeningAnswerInfo]:
        """Current answers to one question, ordered by creation time then id."""
        if screening_session_screening_id is None or screening_question_id is None:
            return []
        rows = await self._repo.list_current_answers(
            db, screening_session_screening_id, screening_question_id,
        )
        return [ScreeningAnswerInfo.model_validate(r) for r in rows]

    # ==================================================================
    # Answer submission — write path
    # ==================================================================

    async def create_screening_answers(
        self,
        db: AsyncSession,
        *,
        screening_session_screening_id: uuid.UUID | None,
        screening_question_id: uuid.UUID | None,
        answers: list[CreateAnswer] | None,
        created_by_account_id: uuid.UUID | None,
    ) -> list[uuid.UUID]:
        """Record answers to one question and advance the session.

        Returns the ids of the new answer rows.  Raises
        :class:`ValidationError` listing every input problem before anything
        is written.
        A crisis flag raised here is announced only through
        :meth:`dispatch_crisis_notifications` after the caller commits.
        """
        session_screening, prepared = await self._validate_answers(
            db,
            screening_session_screening_id=screening_session_screening_id,
            screening_question_id=screening_question_id,
            answers=answers,
            created_by_account_id=created_by_account_id,
        )

        crisis_raised = False
        async with db.begin_nested():
            session = await self._repo.lock_session(db, session_screening.screening_session_id)
            if session.completed:
                # Completed by a concurrent submission after validation
                raise ValidationError(["This screening session has already been completed."])

            current = await self._repo.get_current_session_screening(db, session.id)
            batch = await self._repo.next_answer_batch(db, session_screening.id)
            rows = await self._repo.create_answers(
                db,
                screening_session_screening_id=session_screening.id,
                created_by_account_id=created_by_account_id,
                answer_batch=batch,
                answers=prepared,
            )
            logger.info(
                "Recorded %d answer(s) for question %s in session screening %s (batch %d)",
                len(rows), screening_question_id, session_screening.id, batch,
            )

            await self._score(db, session_screening, is_current=current.id == session_screening.id)
            crisis_raised = await self._orchestrate(db, session)

        if crisis_raised:
            db.info.setdefault(_PENDING_CRISIS_KEY, []).append((
                session.id,
                {
                    "screening_flow_version_id": str(session.screening_flow_version_id),
                    "target_account_id": str(session.target_account_id),
                    "screening_session_screening_id": str(session_screening.id),
                },
            ))
        return [row.id for row in rows]

    async def dispatch_crisis_notifications(self, db: AsyncSession) -> None:
        """Send the crisis notifications queued on ``db``.  Call after it commits.

        A failing notifier is logged; the committed submission stands and
        the remaining notifications are still sent.
        """
        for session_id, metadata in db.info.pop(_PENDING_CRISIS_KEY, []):
            try:
                await self._notifier.notify(session_id, metadata)
            except Exception:
                logger.exception("Crisis notification failed for screening session %s", session_id)

    def discard_crisis_notifications(self, db: AsyncSession) -> None:
        """Drop queued notifications after ``db`` rolled back; their flags were never saved."""
        for session_id, _ in db.info.pop(_PENDING_CRISIS_KEY, []):
            logger.info("Dropped crisis notification for rolled-back screening session %s", session_id)

    async def _validate_answers(
        self,
        db: AsyncSession,
        *,
        screening_session_screening_id: uuid.UUID | None,
        screening_question_id: uuid.UUID | None,
        answers: list[CreateAnswer] | None,
        created_by_account_id: uuid.UUID | None,
    ) -> tuple[Any, list[tuple[uuid.UUID, str | None]]]:
        """Check a submission and return the session screening and (option id, text) pairs."""
        errors = ValidationError()

        session_screening = None
        if screening_session_screening_id is None:
            errors.add_field("screening_session_screening_id", "Screening session screening ID is required.")
        else:
            session_screening = await self._repo.get_session_screening(db, screening_session_screening_id)
            if session_screening is None:
                errors.add_field("screening_session_screening_id", "Screening session screening ID is invalid.")

        question = None
        if screening_question_id is None:
            errors.add_field("screening_question_id", "Screening question ID is required.")
        else:
            question = await self._repo.get_screening_question(db, screening_question_id)
            if question is None:
                errors.add_field("screening_question_id", "Screening question ID is invalid.")

        if (
            session_screening is not None
            and question is not None
            and question.screening_version_id != session_screening.screening_version_id
        ):
            errors.add_field("screening_question_id", "Question does not belong to this screening.")

        if session_screening is not None:
            session = await self._repo.get_session(db, session_screening.screening_session_id)
            if session is not None and session.completed:
                errors.add("This screening session has already been completed.")

        await self._check_account(db, errors, "created_by_account_id", created_by_account_id)

        answers = [a for a in (answers or []) if a is not None]
        prepared: list[tuple[uuid.UUID, str | None]] = []
        if not answers:
            errors.add_field("answers", "You must answer the question to proceed.")
        else:
            # Option ids are checked even when the question is unusable
            answer_format = AnswerFormat(question.answer_format) if question is not None else None
            if (
                answer_format is not None
                and answer_format != AnswerFormat.MULTI_SELECT
                and len(answers) > 1
            ):
                errors.add_field("answers", "Only one answer may be given for this question.")
            option_ids = [a.screening_answer_option_id for a in answers if a.screening_answer_option_id]
            if len(option_ids) != len(set(option_ids)):
                errors.add_field("answers", "Each answer option may only be selected once.")

            illegal_option = False
            for index, answer in enumerate(answers):
                field_prefix = f"answers[{index}]"
                if answer.screening_answer_option_id is None:
                    errors.add_field(f"{field_prefix}.screening_answer_option_id", "Answer option ID is required.")
                    continue
                option = await self._repo.get_screening_answer_option(db, answer.screening_answer_option_id)
                if option is None:
                    errors.add_field(f"{field_prefix}.screening_answer_option_id", "Answer option ID is invalid.")
                    continue
                if question is None:
                    continue
                if option.screening_question_id != question.id:
                    illegal_option = True
                    continue

                text = _trim_to_none(answer.text)
                if answer_format == AnswerFormat.FREE_TEXT:
                    if text is None:
                        errors.add_field(f"{field_prefix}.text", "Your answer is required.")
                        continue
                    hint = ContentHint(question.content_hint)
                    normalized = normalize_free_text(text, hint)
                    if normalized is None:
                        errors.add_field(f"{field_prefix}.text", _INVALID_HINTED_TEXT[hint])
                        continue
                    text = normalized
                prepared.append((option.id, text))

            if illegal_option:
                errors.add("You can only supply answers for the current question.")

        errors.raise_if_any()
        return session_screening, prepared

    # ------------------------------------------------------------------
    # Scoring and orchestration
    # ------------------------------------------------------------------

    async def _score(self, db: AsyncSession, session_screening: Any, *, is_current: bool) -> None:
        """Score a session screening from its current answers and persist the result."""
        version = await self._repo.get_screening_version(db, session_screening.screening_version_id)
        questions = await self._questions_with_options(db, version.id)
        answers = await self._repo.list_current_answers(db, session_screening.id)

        output = self._scoring.evaluate(version.scoring_rule, questions, answers)
        if not output.completed and not is_current:
            raise self._integrity(
                f"Scoring would leave session screening {session_screening.id} incomplete "
                "although it is not the current screening"
            )

        await self._repo.save_score(
            db, session_screening, completed=output.completed, score=output.score,
        )
        logger.info(
            "Scored session screening %s: score=%d completed=%s",
            session_screening.id, output.score, output.completed,
        )

    async def _orchestrate(self, db: AsyncSession, session: Any) -> bool:
        """Run the flow's orchestration rule and apply its effects.

        Returns True if this call raised the session's crisis flag.
        """
        flow_version = await self._repo.get_screening_flow_version(db, session.screening_flow_version_id)
        flow = await self._repo.get_screening_flow(db, flow_version.screening_flow_id)
        screenings = await self._repo.list_screenings_by_institution(db, flow.institution_id)

        records: list[SessionScreeningRecord] = []
        for row in await self._repo.list_session_screenings(db, session.id):
            version = await self._repo.get_screening_version(db, row.screening_version_id)
            records.append(SessionScreeningRecord(
                session_screening=row,
                screening=await self._repo.get_screening(db, version.screening_id),
                questions=await self._questions_with_options(db, version.id),
                answers=await self._repo.list_current_answers(db, row.id),
            ))

        output = self._orchestration.evaluate(
            flow_version.orchestration_rule,
            session=session,
            records=records,
            screenings=screenings,
        )
        logger.info(
            "Orchestrated session %s: completed=%s crisis_indicated=%s next_screening_id=%s",
            session.id, output.completed, output.crisis_indicated, output.next_screening_id,
        )

        if output.next_screening_id is not None:
            current = records[-1].session_screening
            if not current.completed:
                raise ConfigurationError(
                    f"Orchestration named next screening {output.next_screening_id} "
                    f"while session screening {current.id} is still incomplete"
                )
            await self._start_screening(db, session, output.next_screening_id)

        crisis_raised = False
        if output.crisis_indicated and not session.crisis_indicated:
            await self._repo.mark_crisis_indicated(db, session)
            crisis_raised = True
            logger.warning("Crisis indicated for screening session %s", session.id)

        if output.completed:
            await self._repo.complete_session(db, session)
            logger.info("Completed screening session %s", session.id)

        return crisis_raised

    async def _start_screening(self, db: AsyncSession, session: Any, screening_id: uuid.UUID) -> None:
        screening = await self._repo.get_screening(db, screening_id)
        if screening is None:
            raise ConfigurationError(f"Orchestration named unknown screening {screening_id}")
        version = await self._active_screening_version(db, screening)
        order = await self._repo.next_screening_order(db, session.id)
        await self._repo.freeze_screening_version(db, version)
        await self._repo.create_session_screening(
            db,
            screening_session_id=session.id,
            screening_version_id=version.id,
            screening_order=order,
        )
        logger.info(
            "Session %s advanced to screening %s (order %d)", session.id, screening.name, order,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _check_account(
        self,
        db: AsyncSession,
        errors: ValidationError,
        field_name: str,
        account_id: uuid.UUID | None,
    ) -> None:
        if account_id is None:
            errors.add_field(field_name, "Account ID is required.")
        elif not await self._accounts.account_exists(db, account_id):
            errors.add_field(field_name, "Account ID is invalid.")

    async def _active_flow_version(self, db: AsyncSession, flow: Any) -> Any:
        version_id = flow.active_screening_flow_version_id
        version = (
            await self._repo.get_screening_flow_version(db, version_id)
            if version_id is not None else None
        )
        if version is None:
            raise ConfigurationError(f"Screening flow {flow.id} has no active version")
        return version

    async def _active_screening_version(self, db: AsyncSession, screening: Any) -> Any:
        version_id = screening.active_screening_version_id
        version = (
            await self._repo.get_screening_version(db, version_id)
            if version_id is not None else None
        )
        if version is None:
            raise ConfigurationError(f"Screening {screening.name} has no active version")
        return version

    async def _questions_with_options(
        self, db: AsyncSession, screening_version_id: uuid.UUID
    ) -> list[QuestionWithOptions]:
        questions = await self._repo.list_questions(db, screening_version_id)
        options = await self._repo.list_answer_options(db, screening_version_id)
        by_question: dict[uuid.UUID, list[Any]] = {}
        for option in options:
            by_question.setdefault(option.screening_question_id, []).append(option)
        return [QuestionWithOptions(q, by_question.get(q.id, [])) for q in questions]

    @staticmethod
    def _integrity(message: str) -> IntegrityError:
        logger.error(message)
        return IntegrityError(message)
