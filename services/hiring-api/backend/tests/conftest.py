"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite file under ``tmp_path`` so the write-lock
behaviour matches a real file database (in-memory SQLite shares nothing
between connections).
"""

from datetime import datetime
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from hiring_api import auth, companies, models
from hiring_api import celery_app as dispatch
from hiring_api.database import build_engine, build_sessionmaker, get_session
from hiring_api.main import create_app


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep PBKDF2 cheap in tests."""
    monkeypatch.setattr(auth, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture(autouse=True)
def queued_tasks(monkeypatch) -> list[dict[str, Any]]:
    """Capture Celery tasks instead of talking to Redis."""
    calls: list[dict[str, Any]] = []

    def fake_send_task(name, args=None, kwargs=None, queue=None, **options):
        calls.append({"name": name, "args": list(args or []), "kwargs": dict(kwargs or {}), "queue": queue})

    monkeypatch.setattr(dispatch.celery_app, "send_task", fake_send_task)
    return calls


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'hiring.db'}")
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def company(session) -> models.Company:
    """Company with the default welcome grant of 3 credits."""
    return companies.create_company(session, "Acme", website="https://acme.test")


@pytest.fixture
def broke_company(session) -> models.Company:
    return companies.create_company(session, "Broke Ltd", initial_credits=0)


@pytest.fixture
def make_developer(session) -> Callable[..., models.Developer]:
    def _make(
        email: str = "dev@example.com",
        status: models.AssessmentStatus = models.AssessmentStatus.ASSESSED,
        **fields: Any,
    ) -> models.Developer:
        developer = models.Developer(email=email, assessment_status=status, **fields)
        session.add(developer)
        session.commit()
        return developer

    return _make


@pytest.fixture
def make_entry(session) -> Callable[..., models.PipelineEntry]:
    """Insert a bound pipeline entry directly, bypassing the transition rules."""

    def _make(
        company: models.Company,
        developer: models.Developer,
        stage: models.PipelineStage = models.PipelineStage.ASSESSED,
    ) -> models.PipelineEntry:
        entry = models.PipelineEntry(
            company_id=company.id,
            developer_id=developer.id,
            candidate_email=developer.email,
            stage=stage,
        )
        session.add(entry)
        session.commit()
        return entry

    return _make


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def client(session):
    """API client whose requests share the test's session."""
    app = create_app()

    def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
