"""Health check endpoints."""

from fastapi import APIRouter, Depends

from timetracking.db.dependencies import get_db_repository
from timetracking.repositories.db_repository import DbRepository

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Simple liveness endpoint."""

    return {"status": "ok"}


@router.get("/health/schema")
def schema_fingerprint(repository: DbRepository = Depends(get_db_repository)) -> dict[str, str]:
    """Fingerprint an export document must carry to be importable here."""

    return {"database_model_hash": repository.get_database_model_hash()}
