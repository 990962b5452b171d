"""Catalog ORM models — screening content and flow definitions.

Content is versioned.  ``Screening`` and ``ScreeningFlow`` are thin named
rows whose ``active_*_version_id`` pointer selects the version new sessions
start on.  A version is stamped ``frozen_at`` the first time a session
references it; after that neither its rule text nor its questions and
answer options can change or be deleted (see the mapper listeners at the
bottom of this module).

Hierarchy::

    Screening 1--* ScreeningVersion 1--* ScreeningQuestion 1--* ScreeningAnswerOption
    ScreeningFlow 1--* ScreeningFlowVersion
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
    inspect,
    select,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from screening_db.models.base import Base, created_at_column, uuid_pk
from screening_db.models.enums import AnswerFormat, ContentHint

# Which institutions may use which screenings
screening_institution = Table(
    "screening_institution",
    Base.metadata,
    Column(
        "screening_id",
        UUID(as_uuid=True),
        ForeignKey("screenings.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("institution_id", Text, primary_key=True),
)


class Screening(Base):
    """A named screening instrument (e.g. PHQ-9)."""

    __tablename__ = "screenings"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # Nullable only so the row can exist before its first version is inserted
    active_screening_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("screening_versions.id", use_alter=True, name="fk_screening_active_version"),
        nullable=True,
    )
    created_at: Mapped[datetime] = created_at_column()

    def __repr__(self) -> str:
        return f"<Screening(id={self.id!s}, name={self.name!r})>"


class ScreeningVersion(Base):
    """One immutable revision of a screening's questions and scoring rule."""

    __tablename__ = "screening_versions"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screenings.id"), nullable=False, index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # YAML decision table evaluated by screening_engine.evaluator.RuleEvaluator
    scoring_rule: Mapped[str] = mapped_column(Text, nullable=False)
    frozen_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("screening_id", "version_number", name="uq_screening_version_number"),
    )


class ScreeningQuestion(Base):
    """A question belonging to exactly one screening version."""

    __tablename__ = "screening_questions"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_version_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_versions.id"), nullable=False, index=True,
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    answer_format: Mapped[AnswerFormat] = mapped_column(
        String(20), nullable=False, default=AnswerFormat.SINGLE_SELECT,
    )
    content_hint: Mapped[ContentHint] = mapped_column(
        String(20), nullable=False, default=ContentHint.NONE,
    )
    display_order: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("screening_version_id", "display_order", name="uq_question_display_order"),
    )


class ScreeningAnswerOption(Base):
    """A selectable answer for a question.  Free-text questions carry one option."""

    __tablename__ = "screening_answer_options"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_questions.id"), nullable=False, index=True,
    )
    answer_option_text: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    indicates_crisis: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(SmallInteger, nullable=False)


class ScreeningFlow(Base):
    """An institution's branchable composition of screenings."""

    __tablename__ = "screening_flows"

    id: Mapped[uuid.UUID] = uuid_pk()
    institution_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active_screening_flow_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("screening_flow_versions.id", use_alter=True, name="fk_flow_active_version"),
        nullable=True,
    )
    created_at: Mapped[datetime] = created_at_column()


class ScreeningFlowVersion(Base):
    """One immutable revision of a flow: where it starts and how it branches."""

    __tablename__ = "screening_flow_versions"

    id: Mapped[uuid.UUID] = uuid_pk()
    screening_flow_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screening_flows.id"), nullable=False, index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    initial_screening_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("screenings.id"), nullable=False,
    )
    orchestration_rule: Mapped[str] = mapped_column(Text, nullable=False)
    frozen_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = created_at_column()

    __table_args__ = (
        UniqueConstraint("screening_flow_id", "version_number", name="uq_flow_version_number"),
    )


# ---------------------------------------------------------------------------
# Immutability of referenced versions
# ---------------------------------------------------------------------------

class FrozenVersionError(RuntimeError):
    """Raised on flush when a referenced (frozen) version would change."""


_FROZEN_FIELDS: dict[type, tuple[str, ...]] = {
    ScreeningVersion: ("scoring_rule", "screening_id", "version_number"),
    ScreeningFlowVersion: ("orchestration_rule", "initial_screening_id", "screening_flow_id", "version_number"),
}


def _reject_frozen_changes(mapper, connection, target) -> None:
    """Refuse to flush content changes to a version that a session references."""
    state = inspect(target)
    history = state.attrs.frozen_at.history
    was_frozen = any(v is not None for v in (*history.unchanged, *history.deleted))
    if not was_frozen:
        return
    if target.frozen_at is None:
        raise FrozenVersionError(f"{type(target).__name__} {target.id} cannot be unfrozen")
    changed = [
        name for name in _FROZEN_FIELDS[type(target)]
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        raise FrozenVersionError(
            f"{type(target).__name__} {target.id} is referenced by a session; "
            f"cannot modify {', '.join(changed)}"
        )


def _reject_frozen_delete(mapper, connection, target) -> None:
    if target.frozen_at is not None:
        raise FrozenVersionError(
            f"{type(target).__name__} {target.id} is referenced by a session; cannot delete"
        )


for _cls in _FROZEN_FIELDS:
    event.listen(_cls, "before_update", _reject_frozen_changes)
    event.listen(_cls, "before_delete", _reject_frozen_delete)


# Questions and options have no frozen_at of their own; they follow the
# version they belong to.  An update is checked against both the old and
# the new parent, so content cannot be moved out of a frozen version.

def _parent_ids(target, attr: str) -> list:
    """The current parent id, then the one it replaces on update."""
    history = inspect(target).attrs[attr].history
    ids = []
    for value in (getattr(target, attr), *history.deleted):
        if value is not None and value not in ids:
            ids.append(value)
    return ids


def _reject_frozen_question(mapper, connection, target) -> None:
    for version_id in _parent_ids(target, "screening_version_id"):
        stmt = select(ScreeningVersion.frozen_at).where(ScreeningVersion.id == version_id)
        if connection.execute(stmt).scalar() is not None:
            raise FrozenVersionError(
                f"ScreeningVersion {version_id} is referenced by a session; "
                f"cannot change its questions"
            )


def _reject_frozen_answer_option(mapper, connection, target) -> None:
    for question_id in _parent_ids(target, "screening_question_id"):
        stmt = (
            select(ScreeningVersion.frozen_at)
            .join(ScreeningQuestion, ScreeningQuestion.screening_version_id == ScreeningVersion.id)
            .where(ScreeningQuestion.id == question_id)
        )
        if connection.execute(stmt).scalar() is not None:
            raise FrozenVersionError(
                f"ScreeningQuestion {question_id} belongs to a version referenced by a session; "
                f"cannot change its answer options"
            )


for _event in ("before_insert", "before_update", "before_delete"):
    event.listen(ScreeningQuestion, _event, _reject_frozen_question)
    event.listen(ScreeningAnswerOption, _event, _reject_frozen_answer_option)
