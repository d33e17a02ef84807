"""Administrative endpoints for moving the whole dataset."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from timetracking.db.dependencies import get_db_repository
from timetracking.repositories.db_repository import DbRepository
from timetracking.schemas.database_export import DatabaseExport
from timetracking.services.filter_factory import ExportFilterSet
from timetracking.services.maintenance_service import MaintenanceService

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


class ExportFilterPayload(BaseModel):
    customer_ids: list[UUID] = Field(default_factory=list)
    project_ids: list[UUID] = Field(default_factory=list)
    activity_ids: list[UUID] = Field(default_factory=list)
    order_ids: list[UUID] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    include_hidden: bool = True


def _maintenance_service(repository: DbRepository) -> MaintenanceService:
    return MaintenanceService(repository)


@router.post("/export", response_model=DatabaseExport, response_model_by_alias=False)
def export_data(
    payload: ExportFilterPayload | None = None,
    repository: DbRepository = Depends(get_db_repository),
) -> DatabaseExport:
    filters = ExportFilterSet(**payload.model_dump()) if payload is not None else None
    return _maintenance_service(repository).export_data(filters)


@router.post("/import", status_code=status.HTTP_204_NO_CONTENT)
def import_data(
    payload: DatabaseExport,
    repository: DbRepository = Depends(get_db_repository),
) -> Response:
    _maintenance_service(repository).import_data(payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/data", status_code=status.HTTP_204_NO_CONTENT)
def truncate_data(repository: DbRepository = Depends(get_db_repository)) -> Response:
    _maintenance_service(repository).truncate_data()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
def reset_database(repository: DbRepository = Depends(get_db_repository)) -> Response:
    _maintenance_service(repository).reset_database()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
