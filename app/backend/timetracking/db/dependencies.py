"""Database dependencies for FastAPI endpoints."""

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from timetracking.db.session import SessionLocal
from timetracking.repositories.db_repository import DbRepository


def get_db_session() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session scoped to one request."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_db_repository(db: Session = Depends(get_db_session)) -> DbRepository:
    """Wrap the request session in the generic repository."""

    return DbRepository(db)
