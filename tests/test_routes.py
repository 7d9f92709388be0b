"""Tests for API routes."""

import json
import threading
import time
from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from app.directory.sync import SyncOrchestrator
from app.models import AttendanceRecord, Event, Person
from tests.helpers import make_event_entry, make_person_entry

EVENTS = "calendar/list-events"
PEOPLE = "calendar/list-people"


def add_event(session: Session, api_id: str, start: datetime) -> Event:
    event = Event(api_id=api_id, title=f"Event {api_id}", start_time=start, end_time=start + timedelta(hours=2))
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient):
        """Test the health endpoint returns OK."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"


class TestSyncRoutes:
    """Tests for sync trigger and monitoring routes."""

    def test_sync_now(self, client: TestClient, directory, session: Session):
        directory.add_pages(EVENTS, [make_event_entry("a"), make_event_entry("b")])
        directory.add_pages(PEOPLE, [make_person_entry("usr-1", "a@example.com")])

        response = client.post("/sync/now")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["result"]["event_count"] == 2
        assert data["result"]["person_count"] == 1
        assert data["result"]["full_resync"] is False
        assert len(session.exec(select(Event)).all()) == 2

    def test_sync_now_while_running(self, client: TestClient, orchestrator: SyncOrchestrator, directory):
        orchestrator._guard.acquire()
        try:
            response = client.post("/sync/now")
        finally:
            orchestrator._guard.release()

        assert response.status_code == 409
        assert response.json()["status"] == "already_running"
        assert directory.requests == []

    def test_sync_failure_is_reported(self, client: TestClient, directory):
        directory.add_pages(EVENTS, 500)

        response = client.post("/sync/now")

        assert response.status_code == 502
        assert "500" in response.json()["detail"]

    def test_force_sync(self, client: TestClient, directory):
        client.post("/sync/now")
        directory.requests.clear()

        response = client.post("/sync/force")

        assert response.status_code == 200
        assert response.json()["result"]["full_resync"] is True
        assert "created_after" not in directory.requests_for(EVENTS)[0]

    def test_attendance_sync(self, client: TestClient, directory):
        directory.add_pages(EVENTS, [make_event_entry("a")])

        response = client.post("/sync/attendance")

        assert response.status_code == 200
        assert response.json()["result"]["events_tracked"] == 1
        assert len(directory.requests_for("event/get-guests")) == 1

    def test_status(self, client: TestClient):
        response = client.get("/sync/status")

        assert response.status_code == 200
        data = response.json()
        assert data["is_running"] is False
        assert data["last_synced_at"] is None

        client.post("/sync/now")
        data = client.get("/sync/status").json()
        assert data["last_synced_at"] == "2026-03-01T12:00:00+00:00"
        assert data["last_outcome"] == "completed"

    def test_clear_data(self, client: TestClient, session: Session, sample_event: Event):
        response = client.delete("/sync/data")

        assert response.status_code == 200
        assert response.json() == {"status": "cleared"}
        assert session.exec(select(Event)).all() == []

    def test_clear_data_while_running(self, client: TestClient, orchestrator: SyncOrchestrator, sample_event):
        orchestrator._guard.acquire()
        try:
            response = client.delete("/sync/data")
        finally:
            orchestrator._guard.release()

        assert response.status_code == 409

    def test_progress_stream(self, client: TestClient, orchestrator: SyncOrchestrator):
        reporter = orchestrator.reporter

        def publish_when_subscribed():
            deadline = time.monotonic() + 5
            while reporter.subscriber_count == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            reporter.begin_pass()
            reporter.status("Starting sync", 0)
            reporter.progress("Saved events batch 1 of 1", 40)
            reporter.complete("Synced 1 events and 0 people", event_count=1)

        publisher = threading.Thread(target=publish_when_subscribed)
        publisher.start()
        response = client.get("/sync/progress")
        publisher.join(timeout=5)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [
            json.loads(line.removeprefix("data: "))
            for line in response.text.splitlines()
            if line.startswith("data: ")
        ]
        assert [e["type"] for e in events] == ["status", "progress", "complete"]
        assert events[-1]["progress"] == 100
        assert events[-1]["payload"] == {"event_count": 1}
        assert reporter.subscriber_count == 0


class TestEventsRoutes:
    """Tests for event read routes."""

    def test_list_events(self, client: TestClient, session: Session):
        now = datetime.now(UTC)
        add_event(session, "later", now + timedelta(days=10))
        add_event(session, "sooner", now + timedelta(days=1))
        add_event(session, "past", now - timedelta(days=10))

        response = client.get("/events")
        assert response.status_code == 200
        assert [e["api_id"] for e in response.json()] == ["past", "sooner", "later"]

        upcoming = client.get("/events", params={"upcoming": True}).json()
        assert [e["api_id"] for e in upcoming] == ["sooner", "later"]

    def test_event_detail(self, client: TestClient, sample_event: Event):
        response = client.get(f"/events/{sample_event.api_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Sample Meetup"
        assert data["location"]["city"] == "Lyon"

    def test_event_detail_not_found(self, client: TestClient):
        """Test 404 for non-existent event."""
        response = client.get("/events/evt-missing")
        assert response.status_code == 404

    def test_event_attendance(self, client: TestClient, session: Session, sample_event: Event):
        session.add(AttendanceRecord(
            guest_api_id="gst-1",
            event_api_id=sample_event.api_id,
            user_email="a@example.com",
            approval_status="approved",
        ))
        session.commit()

        response = client.get(f"/events/{sample_event.api_id}/attendance")

        assert response.status_code == 200
        assert [r["user_email"] for r in response.json()] == ["a@example.com"]

    def test_attendance_of_unknown_event(self, client: TestClient):
        assert client.get("/events/evt-missing/attendance").status_code == 404


class TestPeopleRoutes:
    """Tests for people read routes."""

    def test_filter_by_email(self, client: TestClient, session: Session):
        session.add(Person(api_id="usr-1", email="Ann@Example.com"))
        session.add(Person(api_id="usr-2", email="bob@example.com"))
        session.commit()

        response = client.get("/people", params={"email": "ann@example.com"})

        assert response.status_code == 200
        assert [p["api_id"] for p in response.json()] == ["usr-1"]
        assert len(client.get("/people").json()) == 2

    def test_pagination(self, client: TestClient, session: Session):
        for i in range(3):
            session.add(Person(api_id=f"usr-{i}", email=f"p{i}@example.com"))
        session.commit()

        page = client.get("/people", params={"limit": 2, "offset": 2}).json()
        assert [p["api_id"] for p in page] == ["usr-2"]

    def test_person_not_found(self, client: TestClient):
        assert client.get("/people/usr-missing").status_code == 404
