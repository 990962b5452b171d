"""Async repository for screening catalog and session state.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries; the repository calls ``flush()`` but never
``commit()``.

The repository does no business validation.  It does own the two queries
whose correctness depends on SQL semantics: the per-session row lock and
the "current answer" projection over the append-only answer ledger.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.models.catalog import (
    Screening,
    ScreeningAnswerOption,
    ScreeningFlow,
    ScreeningFlowVersion,
    ScreeningQuestion,
    ScreeningVersion,
    screening_institution,
)
from screening_db.models.session import (
    Account,
    ScreeningAnswer,
    ScreeningSession,
    ScreeningSessionScreening,
)


class ScreeningRepository:
    """Async read/write operations over the screening tables."""

    # ------------------------------------------------------------------
    # Catalog — point lookups
    # ------------------------------------------------------------------

    async def get_screening(
        self, db: AsyncSession, screening_id: uuid.UUID
    ) -> Screening | None:
        return await db.get(Screening, screening_id)

    async def get_screening_version(
        self, db: AsyncSession, screening_version_id: uuid.UUID
    ) -> ScreeningVersion | None:
        return await db.get(ScreeningVersion, screening_version_id)

    async def get_screening_question(
        self, db: AsyncSession, screening_question_id: uuid.UUID
    ) -> ScreeningQuestion | None:
        return await db.get(ScreeningQuestion, screening_question_id)

    async def get_screening_answer_option(
        self, db: AsyncSession, screening_answer_option_id: uuid.UUID
    ) -> ScreeningAnswerOption | None:
        return await db.get(ScreeningAnswerOption, screening_answer_option_id)

    async def get_screening_flow(
        self, db: AsyncSession, screening_flow_id: uuid.UUID
    ) -> ScreeningFlow | None:
        return await db.get(ScreeningFlow, screening_flow_id)

    async def get_screening_flow_version(
        self, db: AsyncSession, screening_flow_version_id: uuid.UUID
    ) -> ScreeningFlowVersion | None:
        return await db.get(ScreeningFlowVersion, screening_flow_version_id)

    async def get_account(self, db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        return await db.get(Account, account_id)

    # ------------------------------------------------------------------
    # Catalog — listings
    # ------------------------------------------------------------------

    async def list_screenings_by_institution(
        self, db: AsyncSession, institution_id: str
    ) -> list[Screening]:
        """Screenings enabled for an institution, ordered by name."""
        stmt = (
            select(Screening)
            .join(
                screening_institution,
                screening_institution.c.screening_id == Screening.id,
            )
            .where(screening_institution.c.institution_id == institution_id)
            .order_by(Screening.name)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_screening_flows_by_institution(
        self, db: AsyncSession, institution_id: str
    ) -> list[ScreeningFlow]:
        stmt = (
            select(ScreeningFlow)
            .where(ScreeningFlow.institution_id == institution_id)
            .order_by(ScreeningFlow.name)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_screening_flow_versions(
        self, db: AsyncSession, screening_flow_id: uuid.UUID
    ) -> list[ScreeningFlowVersion]:
        """All versions of a flow, newest first."""
        stmt = (
            select(ScreeningFlowVersion)
            .where(ScreeningFlowVersion.screening_flow_id == screening_flow_id)
            .order_by(ScreeningFlowVersion.version_number.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_questions(
        self, db: AsyncSession, screening_version_id: uuid.UUID
    ) -> list[ScreeningQuestion]:
        stmt = (
            select(ScreeningQuestion)
            .where(ScreeningQuestion.screening_version_id == screening_version_id)
            .order_by(ScreeningQuestion.display_order)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_answer_options(
        self, db: AsyncSession, screening_version_id: uuid.UUID
    ) -> list[ScreeningAnswerOption]:
        """Every option of every question in a version, by option display order."""
        stmt = (
            select(ScreeningAnswerOption)
            .join(
                ScreeningQuestion,
                ScreeningAnswerOption.screening_question_id == ScreeningQuestion.id,
            )
            .where(ScreeningQuestion.screening_version_id == screening_version_id)
            .order_by(ScreeningAnswerOption.display_order)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Catalog — version freezing
    # ------------------------------------------------------------------

    async def freeze_screening_version(
        self, db: AsyncSession, version: ScreeningVersion
    ) -> ScreeningVersion:
        """Stamp ``frozen_at`` the first time a session references the version."""
        if version.frozen_at is None:
            version.frozen_at = datetime.now(timezone.utc)
            await db.flush()
        return version

    async def freeze_screening_flow_version(
        self, db: AsyncSession, version: ScreeningFlowVersion
    ) -> ScreeningFlowVersion:
        if version.frozen_at is None:
            version.frozen_at = datetime.now(timezone.utc)
            await db.flush()
        return version

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        screening_flow_version_id: uuid.UUID,
        target_account_id: uuid.UUID,
        created_by_account_id: uuid.UUID,
    ) -> ScreeningSession:
        session = ScreeningSession(
            screening_flow_version_id=screening_flow_version_id,
            target_account_id=target_account_id,
            created_by_account_id=created_by_account_id,
        )
        db.add(session)
        await db.flush()  # Populate defaults (id, timestamps)
        return session

    async def get_session(
        self, db: AsyncSession, screening_session_id: uuid.UUID
    ) -> ScreeningSession | None:
        return await db.get(ScreeningSession, screening_session_id)

    async def lock_session(
        self, db: AsyncSession, screening_session_id: uuid.UUID
    ) -> ScreeningSession | None:
        """Fetch the session row with ``FOR UPDATE`` and refresh it.

        Serialises concurrent submissions for the same session until the
        surrounding transaction ends.  ``populate_existing`` discards any
        stale copy already in the identity map.
        """
        stmt = (
            select(ScreeningSession)
            .where(ScreeningSession.id == screening_session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_sessions_by_flow(
        self,
        db: AsyncSession,
        screening_flow_id: uuid.UUID,
        participant_account_id: uuid.UUID,
    ) -> list[ScreeningSession]:
        """Sessions of any version of a flow that the participant took or started."""
        stmt = (
            select(ScreeningSession)
            .join(
                ScreeningFlowVersion,
                ScreeningSession.screening_flow_version_id == ScreeningFlowVersion.id,
            )
            .where(
                ScreeningFlowVersion.screening_flow_id == screening_flow_id,
                or_(
                    ScreeningSession.target_account_id == participant_account_id,
                    ScreeningSession.created_by_account_id == participant_account_id,
                ),
            )
            .order_by(ScreeningSession.created_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def mark_crisis_indicated(
        self, db: AsyncSession, session: ScreeningSession
    ) -> ScreeningSession:
        now = datetime.now(timezone.utc)
        session.crisis_indicated = True
        session.crisis_indicated_at = now
        session.updated_at = now
        await db.flush()
        return session

    async def complete_session(
        self, db: AsyncSession, session: ScreeningSession
    ) -> ScreeningSession:
        now = datetime.now(timezone.utc)
        session.completed = True
        session.completed_at = now
        session.updated_at = now
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Session screenings
    # ------------------------------------------------------------------

    async def create_session_screening(
        self,
        db: AsyncSession,
        *,
        screening_session_id: uuid.UUID,
        screening_version_id: uuid.UUID,
        screening_order: int,
    ) -> ScreeningSessionScreening:
        row = ScreeningSessionScreening(
            screening_session_id=screening_session_id,
            screening_version_id=screening_version_id,
            screening_order=screening_order,
        )
        db.add(row)
        await db.flush()
        return row

    async def get_session_screening(
        self, db: AsyncSession, screening_session_screening_id: uuid.UUID
    ) -> ScreeningSessionScreening | None:
        return await db.get(ScreeningSessionScreening, screening_session_screening_id)

    async def list_session_screenings(
        self, db: AsyncSession, screening_session_id: uuid.UUID
    ) -> list[ScreeningSessionScreening]:
        stmt = (
            select(ScreeningSessionScreening)
            .where(ScreeningSessionScreening.screening_session_id == screening_session_id)
            .order_by(ScreeningSessionScreening.screening_order)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_current_session_screening(
        self, db: AsyncSession, screening_session_id: uuid.UUID
    ) -> ScreeningSessionScreening | None:
        """The highest-order screening of a session."""
        stmt = (
            select(ScreeningSessionScreening)
            .where(ScreeningSessionScreening.screening_session_id == screening_session_id)
            .order_by(ScreeningSessionScreening.screening_order.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def next_screening_order(
        self, db: AsyncSession, screening_session_id: uuid.UUID
    ) -> int:
        """``max(screening_order) + 1``; only safe while the session row is locked."""
        stmt = select(func.coalesce(func.max(ScreeningSessionScreening.screening_order), 0)).where(
            ScreeningSessionScreening.screening_session_id == screening_session_id
        )
        result = await db.execute(stmt)
        return int(result.scalar_one()) + 1

    async def save_score(
        self,
        db: AsyncSession,
        row: ScreeningSessionScreening,
        *,
        completed: bool,
        score: int,
    ) -> ScreeningSessionScreening:
        row.completed = completed
        row.score = score
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Answer ledger
    # ------------------------------------------------------------------

    async def next_answer_batch(
        self, db: AsyncSession, screening_session_screening_id: uuid.UUID
    ) -> int:
        stmt = select(func.coalesce(func.max(ScreeningAnswer.answer_batch), 0)).where(
            ScreeningAnswer.screening_session_screening_id == screening_session_screening_id
        )
        result = await db.execute(stmt)
        return int(result.scalar_one()) + 1

    async def create_answers(
        self,
        db: AsyncSession,
        *,
        screening_session_screening_id: uuid.UUID,
        created_by_account_id: uuid.UUID,
        answer_batch: int,
        answers: list[tuple[uuid.UUID, str | None]],
    ) -> list[ScreeningAnswer]:
        """Append one row per ``(answer_option_id, text)`` pair."""
        rows = [
            ScreeningAnswer(
                screening_answer_option_id=option_id,
                screening_session_screening_id=screening_session_screening_id,
                created_by_account_id=created_by_account_id,
                text=text,
                answer_batch=answer_batch,
            )
            for option_id, text in answers
        ]
        db.add_all(rows)
        await db.flush()
        return rows

    async def list_current_answers(
        self,
        db: AsyncSession,
        screening_session_screening_id: uuid.UUID,
        screening_question_id: uuid.UUID | None = None,
    ) -> list[ScreeningAnswer]:
        """Current answers: for each question, the rows of its newest batch.

        Ordered by ``created_at`` then ``id``.  Pass ``screening_question_id``
        to restrict the projection to one question.
        """
        latest = (
            select(
                ScreeningAnswerOption.screening_question_id.label("question_id"),
                func.max(ScreeningAnswer.answer_batch).label("answer_batch"),
            )
            .join(
                ScreeningAnswerOption,
                ScreeningAnswer.screening_answer_option_id == ScreeningAnswerOption.id,
            )
            .where(ScreeningAnswer.screening_session_screening_id == screening_session_screening_id)
            .group_by(ScreeningAnswerOption.screening_question_id)
            .subquery()
        )
        stmt = (
            select(ScreeningAnswer)
            .join(
                ScreeningAnswerOption,
                ScreeningAnswer.screening_answer_option_id == ScreeningAnswerOption.id,
            )
            .join(
                latest,
                and_(
                    latest.c.question_id == ScreeningAnswerOption.screening_question_id,
                    latest.c.answer_batch == ScreeningAnswer.answer_batch,
                ),
            )
            .where(ScreeningAnswer.screening_session_screening_id == screening_session_screening_id)
            .order_by(ScreeningAnswer.created_at, ScreeningAnswer.id)
        )
        if screening_question_id is not None:
            stmt = stmt.where(ScreeningAnswerOption.screening_question_id == screening_question_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())
