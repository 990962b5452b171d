"""Screening flow catalog endpoints (read-only)."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from screening_engine.engine import ScreeningEngine
from screening_engine.models.catalog import ScreeningFlowInfo, ScreeningFlowVersionInfo

from screening_server.dependencies import get_account_id, get_db, get_engine

router = APIRouter(tags=["screening-flows"])


@router.get("/screening-flows")
async def list_screening_flows(
    institution_id: str = Query(...),
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> list[ScreeningFlowInfo]:
    """Flows an institution has defined, by name."""
    return await engine.catalog.list_screening_flows_by_institution(db, institution_id)


@router.get("/screening-flows/{screening_flow_id}/versions")
async def list_screening_flow_versions(
    screening_flow_id: uuid.UUID,
    account_id: uuid.UUID = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_engine),
) -> list[ScreeningFlowVersionInfo]:
    """All versions of a flow, newest first.  404 for an unknown flow."""
    if await engine.catalog.find_screening_flow(db, screening_flow_id) is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return await engine.catalog.find_screening_flow_versions(db, screening_flow_id)
