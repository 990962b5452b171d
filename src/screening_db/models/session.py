"""Session-state ORM models — one run of a flow and everything it records.

``ScreeningSession`` is the row concurrent submissions lock on.  Its two
flags only ever move from false to true; the CHECK constraints below make
the timestamps that accompany each transition mandatory.

``ScreeningAnswer`` is an append-only ledger.  Rows are never updated or
deleted; re-answering a question inserts a new ``answer_batch`` and the
repository projects the newest batch per question as the current answer.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from screening_db.models.base import Base, created_at_column, utcnow, uuid_pk


class Account(Base):
    """Minimal account row — existence and institution only.

    Account management lives outside this package; the engine only needs
    to confirm that an id resolves.
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = uuid_pk()
    institution_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[datetime] = created_at_column()


class ScreeningSession(Base):
    """One participant's run through a flow version."""

    __tablename__ = "screening_sessions"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_flow_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_flow_versions.id"), nullable=False, index=True,
    )
    target_account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True,
    )
    created_by_account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False,
    )

    # --- Monotonic flags ---
    completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )
    crisis_indicated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    crisis_indicated_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "NOT completed OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
        CheckConstraint(
            "NOT crisis_indicated OR crisis_indicated_at IS NOT NULL",
            name="ck_crisis_has_timestamp",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScreeningSession(id={self.id!s}, completed={self.completed}, "
            f"crisis_indicated={self.crisis_indicated})>"
        )


class ScreeningSessionScreening(Base):
    """One visited screening within a session.

    ``screening_order`` runs 1..n without gaps; the highest order is the
    session's current screening.
    """

    __tablename__ = "screening_session_screenings"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_sessions.id"), nullable=False,
    )
    screening_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_versions.id"), nullable=False,
    )
    screening_order: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )
    score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("screening_session_id", "screening_order", name="uq_session_screening_order"),
        CheckConstraint("screening_order >= 1", name="ck_screening_order_positive"),
    )


class ScreeningAnswer(Base):
    """A single recorded answer.  Insert-only."""

    __tablename__ = "screening_answers"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_answer_option_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_answer_options.id"), nullable=False,
    )
    screening_session_screening_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_session_screenings.id"), nullable=False,
    )
    created_by_account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False,
    )
    # Normalised participant text for free-text questions
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Submission sequence within the session screening; the highest batch
    # touching a question holds that question's current answer(s)
    answer_batch: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        Index("ix_answer_session_screening_batch", "screening_session_screening_id", "answer_batch"),
    )
