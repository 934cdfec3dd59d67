from __future__ import annotations

from collections.abc import Generator
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from buildtrack.api.routes.analytics import get_analytics_service
from buildtrack.db.base import Base
from buildtrack.db.dependencies import get_db_session
import buildtrack.models.entities  # noqa: F401
from buildtrack.main import create_app
from buildtrack.models.entities import Category, CategoryTeam, Company, Payment, Project, Team, Unit
from buildtrack.services.analytics_cache import AnalyticsCache, get_analytics_cache
from buildtrack.services.analytics_service import PortfolioAnalyticsService
from buildtrack.services.events import ChangeNotifier, get_change_notifier

TEST_TABLES = [
    Company.__table__,
    Project.__table__,
    Unit.__table__,
    Category.__table__,
    Team.__table__,
    CategoryTeam.__table__,
    Payment.__table__,
]

FIXED_TODAY = date(2026, 4, 15)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture()
def analytics_cache(notifier: ChangeNotifier) -> AnalyticsCache:
    cache = AnalyticsCache(enabled=True, today_provider=lambda: FIXED_TODAY)
    notifier.subscribe(cache.handle_event)
    return cache


@pytest.fixture()
def client(
    db_session: Session,
    notifier: ChangeNotifier,
    analytics_cache: AnalyticsCache,
) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    def override_analytics_service() -> PortfolioAnalyticsService:
        return PortfolioAnalyticsService(db_session, today_provider=lambda: FIXED_TODAY)

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_change_notifier] = lambda: notifier
    app.dependency_overrides[get_analytics_cache] = lambda: analytics_cache
    app.dependency_overrides[get_analytics_service] = override_analytics_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
