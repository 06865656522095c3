"""Admin fleet maintenance API."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from castle_bookings.api import deps
from castle_bookings.api.errors import SERVICE_ERRORS, to_http_exception
from castle_bookings.schemas.maintenance import MaintenanceWindowCreate, MaintenanceWindowRead
from castle_bookings.services import maintenance_service

router = APIRouter()


@router.get(
    "/{castle_id}/maintenance",
    response_model=list[MaintenanceWindowRead],
    summary="List maintenance windows",
)
async def list_maintenance(
    castle_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[str, Depends(deps.require_admin)],
    start: date | None = None,
    end: date | None = None,
) -> list[MaintenanceWindowRead]:
    try:
        windows = await maintenance_service.list_windows(
            session, castle_id=castle_id, start_date=start, end_date=end
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return [MaintenanceWindowRead.model_validate(window) for window in windows]


@router.post(
    "/{castle_id}/maintenance",
    response_model=MaintenanceWindowRead,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule maintenance",
)
async def create_maintenance(
    castle_id: uuid.UUID,
    payload: MaintenanceWindowCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    actor: Annotated[str, Depends(deps.require_admin)],
) -> MaintenanceWindowRead:
    try:
        window = await maintenance_service.create_window(
            session, castle_id=castle_id, actor=actor, **payload.model_dump()
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return MaintenanceWindowRead.model_validate(window)


@router.delete(
    "/{castle_id}/maintenance/{window_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove maintenance window",
)
async def delete_maintenance(
    castle_id: uuid.UUID,
    window_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    actor: Annotated[str, Depends(deps.require_admin)],
) -> Response:
    try:
        await maintenance_service.delete_window(
            session, castle_id=castle_id, window_id=window_id, actor=actor
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
