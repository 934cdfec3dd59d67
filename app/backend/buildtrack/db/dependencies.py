"""Database dependencies for FastAPI endpoints."""

from collections.abc import Generator

from sqlalchemy.orm import Session


def get_db_session() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; every aggregator step commits on its own."""

    from buildtrack.db.session import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
