"""Tests for database models."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.models import AttendanceRecord, Event, LocalUser, Person, SyncMetadata


class TestEventModel:
    """Tests for the Event model."""

    def test_create_event(self, session: Session):
        """Test creating a basic event."""
        event = Event(
            api_id="evt-123",
            title="Test Meeting",
            description="Meeting description",
            start_time=datetime.now(UTC),
            end_time=datetime.now(UTC) + timedelta(hours=1),
            location={"city": "Lyon"},
        )
        session.add(event)
        session.commit()

        retrieved = session.exec(select(Event).where(Event.api_id == "evt-123")).first()

        assert retrieved is not None
        assert retrieved.title == "Test Meeting"
        assert retrieved.location == {"city": "Lyon"}
        assert retrieved.attendance_synced_at is None

    def test_event_unique_api_id(self, session: Session):
        """Test that api_id must be unique."""
        event1 = Event(
            api_id="duplicate_id",
            title="First Event",
            start_time=datetime.now(UTC),
            end_time=datetime.now(UTC) + timedelta(hours=1),
        )
        session.add(event1)
        session.commit()

        event2 = Event(
            api_id="duplicate_id",
            title="Second Event",
            start_time=datetime.now(UTC),
            end_time=datetime.now(UTC) + timedelta(hours=1),
        )
        session.add(event2)

        with pytest.raises(IntegrityError):
            session.commit()


class TestPersonModel:
    def test_email_is_not_unique(self, session: Session):
        session.add(Person(api_id="usr-1", email="shared@example.com"))
        session.add(Person(api_id="usr-2", email="shared@example.com"))
        session.commit()

        people = session.exec(select(Person).where(Person.email == "shared@example.com")).all()
        assert len(people) == 2

    def test_unique_api_id(self, session: Session):
        session.add(Person(api_id="usr-1", email="a@example.com"))
        session.commit()
        session.add(Person(api_id="usr-1", email="b@example.com"))

        with pytest.raises(IntegrityError):
            session.commit()


class TestLocalUserModel:
    def test_defaults(self, local_user: LocalUser):
        assert local_user.person_id is None
        assert local_user.is_admin is False
        assert local_user.created_at is not None

    def test_link_to_person(self, session: Session, local_user: LocalUser):
        person = Person(api_id="usr-1", email="x@y.com")
        session.add(person)
        session.commit()

        local_user.person_id = person.id
        session.add(local_user)
        session.commit()
        session.refresh(local_user)

        assert local_user.person_id == person.id


class TestAttendanceRecordModel:
    def test_unique_guest_id(self, session: Session, sample_event: Event):
        for email in ("a@example.com", "b@example.com"):
            session.add(AttendanceRecord(
                guest_api_id="gst-1",
                event_api_id=sample_event.api_id,
                user_email=email,
                approval_status="approved",
            ))

        with pytest.raises(IntegrityError):
            session.commit()

    def test_last_synced_at_default(self, session: Session, sample_event: Event):
        record = AttendanceRecord(
            guest_api_id="gst-1",
            event_api_id=sample_event.api_id,
            user_email="a@example.com",
            approval_status="approved",
        )
        session.add(record)
        session.commit()
        session.refresh(record)

        assert record.last_synced_at is not None
        assert record.ticket_type_id is None


class TestSyncMetadataModel:
    def test_key_is_unique(self, session: Session):
        session.add(SyncMetadata(key="last_sync_completed_at", value="2026-03-01T12:00:00+00:00"))
        session.commit()
        session.add(SyncMetadata(key="last_sync_completed_at", value="2026-03-02T12:00:00+00:00"))

        with pytest.raises(IntegrityError):
            session.commit()
