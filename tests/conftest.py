"""Shared test fixtures."""

from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from app.core.config import Settings
from app.core.database import get_session
from app.directory.client import DirectoryClient
from app.directory.progress import ProgressReporter
from app.directory.sync import SyncOrchestrator
from app.main import app
from app.models import Event, LocalUser
from tests.helpers import BASE_URL, NOW, FakeDirectory


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="test_settings")
def test_settings_fixture() -> Settings:
    return Settings(
        _env_file=None,
        directory_api_base_url=BASE_URL,
        directory_api_key="test-key",
        page_size=50,
        batch_size=50,
        fetch_max_attempts=3,
        retry_base_delay_seconds=1.0,
        page_delay_seconds=0.5,
        attendance_max_pages=10,
        attendance_recent_hours=48,
    )


@pytest.fixture(name="directory")
def directory_fixture() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture(name="directory_client")
def directory_client_fixture(directory: FakeDirectory, test_settings: Settings):
    client = DirectoryClient(
        test_settings.directory_api_base_url,
        test_settings.directory_api_key,
        transport=httpx.MockTransport(directory.handler),
    )
    yield client
    client.close()


@pytest.fixture(name="sleeps")
def sleeps_fixture() -> list[float]:
    """Records every sleep the engine asks for instead of sleeping."""
    return []


@pytest.fixture(name="reporter")
def reporter_fixture() -> ProgressReporter:
    return ProgressReporter()


@pytest.fixture(name="progress_events")
def progress_events_fixture(reporter: ProgressReporter) -> list:
    events = []
    reporter.subscribe(events.append)
    return events


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(engine, directory_client, reporter, test_settings, sleeps):
    return SyncOrchestrator(
        engine,
        directory_client,
        reporter,
        test_settings,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


@pytest.fixture(name="client")
def client_fixture(session: Session, orchestrator: SyncOrchestrator):
    """Create a test client with the test database session and orchestrator."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.state.orchestrator = orchestrator
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    del app.state.orchestrator


@pytest.fixture(name="sample_event")
def sample_event_fixture(session: Session) -> Event:
    """Create a sample synced event for testing."""
    event = Event(
        api_id="evt-sample",
        title="Sample Meetup",
        description="Monthly meetup",
        start_time=NOW + timedelta(days=3),
        end_time=NOW + timedelta(days=3, hours=2),
        location={"city": "Lyon", "country": "France"},
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="local_user")
def local_user_fixture(session: Session) -> LocalUser:
    user = LocalUser(email="x@y.com", display_name="X")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user
