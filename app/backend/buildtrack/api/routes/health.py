"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from buildtrack.db.dependencies import get_db_session

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Process liveness only."""

    return {"status": "ok"}


@router.get("/health/db")
def health_db(db: Session = Depends(get_db_session)) -> dict[str, str]:
    db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "reachable"}
