"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from authorization_gateway.api.dependencies import get_engine
from authorization_gateway.api.main import create_app
from authorization_gateway.domain.models import MonthlyFinancialEntry
from authorization_gateway.domain.workflow import WorkflowEngine
from authorization_gateway.infrastructure.database.models import Base
from authorization_gateway.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FixedClock:
    """Deterministic clock; advance() moves it forward"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 6, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def workflow(clock: FixedClock) -> WorkflowEngine:
    return WorkflowEngine(clock=clock)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session, workflow: WorkflowEngine) -> TestClient:
    """Create FastAPI test client with test database and a fixed clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: workflow
    return TestClient(app)


@pytest.fixture
def steady_months() -> list[MonthlyFinancialEntry]:
    """Three months of 40,000 income and 10,000 expenses"""
    return [
        MonthlyFinancialEntry(payroll=30000, commissions=5000, business=3000, cash=2000, committed_debt=6000, personal_expenses=4000)
        for _ in range(3)
    ]
