"""ScreeningCatalog — read-only access to screening content and flows.

Lookups return ``None`` (or an empty list) when nothing matches, including
when the id itself is ``None``; not-found is never an error here.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.repository import ScreeningRepository

from screening_engine.models.catalog import (
    ScreeningAnswerOptionInfo,
    ScreeningFlowInfo,
    ScreeningFlowVersionInfo,
    ScreeningInfo,
    ScreeningQuestionInfo,
    ScreeningVersionInfo,
)


class ScreeningCatalog:
    def __init__(self, repository: ScreeningRepository | None = None) -> None:
        self._repo = repository or ScreeningRepository()

    async def find_screening(
        self, db: AsyncSession, screening_id: uuid.UUID | None
    ) -> ScreeningInfo | None:
        if screening_id is None:
            return None
        row = await self._repo.get_screening(db, screening_id)
        return ScreeningInfo.model_validate(row) if row is not None else None

    async def find_screening_version(
        self, db: AsyncSession, screening_version_id: uuid.UUID | None
    ) -> ScreeningVersionInfo | None:
        if screening_version_id is None:
            return None
        row = await self._repo.get_screening_version(db, screening_version_id)
        return ScreeningVersionInfo.model_validate(row) if row is not None else None

    async def find_screening_question(
        self, db: AsyncSession, screening_question_id: uuid.UUID | None
    ) -> ScreeningQuestionInfo | None:
        if screening_question_id is None:
            return None
        row = await self._repo.get_screening_question(db, screening_question_id)
        return ScreeningQuestionInfo.model_validate(row) if row is not None else None

    async def find_screening_answer_option(
        self, db: AsyncSession, screening_answer_option_id: uuid.UUID | None
    ) -> ScreeningAnswerOptionInfo | None:
        if screening_answer_option_id is None:
            return None
        row = await self._repo.get_screening_answer_option(db, screening_answer_option_id)
        return ScreeningAnswerOptionInfo.model_validate(row) if row is not None else None

    async def find_screening_flow(
        self, db: AsyncSession, screening_flow_id: uuid.UUID | None
    ) -> ScreeningFlowInfo | None:
        if screening_flow_id is None:
            return None
        row = await self._repo.get_screening_flow(db, screening_flow_id)
        return ScreeningFlowInfo.model_validate(row) if row is not None else None

    async def find_screening_flow_version(
        self, db: AsyncSession, screening_flow_version_id: uuid.UUID | None
    ) -> ScreeningFlowVersionInfo | None:
        if screening_flow_version_id is None:
            return None
        row = await self._repo.get_screening_flow_version(db, screening_flow_version_id)
        return ScreeningFlowVersionInfo.model_validate(row) if row is not None else None

    async def find_screening_flow_versions(
        self, db: AsyncSession, screening_flow_id: uuid.UUID | None
    ) -> list[ScreeningFlowVersionInfo]:
        """All versions of a flow, newest first."""
        if screening_flow_id is None:
            return []
        rows = await self._repo.list_screening_flow_versions(db, screening_flow_id)
        return [ScreeningFlowVersionInfo.model_validate(r) for r in rows]

    async def list_screenings_by_institution(
        self, db: AsyncSession, institution_id: str | None
    ) -> list[ScreeningInfo]:
        if institution_id is None:
            return []
        rows = await self._repo.list_screenings_by_institution(db, institution_id)
        return [ScreeningInfo.model_validate(r) for r in rows]

    async def list_screening_flows_by_institution(
        self, db: AsyncSession, institution_id: str | None
    ) -> list[ScreeningFlowInfo]:
        if institution_id is None:
            return []
        rows = await self._repo.list_screening_flows_by_institution(db, institution_id)
        return [ScreeningFlowInfo.model_validate(r) for r in rows]
