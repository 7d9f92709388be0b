"""Attendance records for synced events.

This module defines the AttendanceRecord model which represents an approved
guest of an event. Unlike events and people, attendance is not synced
incrementally: the whole guest list of an event is replaced on every
attendance sync.
"""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class AttendanceRecord(SQLModel, table=True):
    """An approved guest registration for an event.

    Attributes:
        id: Local surrogate key.
        guest_api_id: Upstream guest ID (unique).
        event_api_id: Upstream ID of the event. Matched loosely against
            ``Event.api_id``; not a foreign key.
        user_email: Guest email, lower-cased. Matched loosely against users
            and people.
        approval_status: Upstream approval status (only "approved" guests
            are stored).
        registered_at: When the guest registered.
        checked_in_at: When the guest checked in at the door, if they did.
        ticket_type_id: Upstream ticket type.
        ticket_type_name: Human-readable ticket name.
        ticket_amount: Price paid, in the smallest currency unit.
        last_synced_at: When this row was written.
    """
    __tablename__ = "attendance_record"

    id: int | None = Field(default=None, primary_key=True)
    guest_api_id: str = Field(index=True, unique=True)
    event_api_id: str = Field(index=True)
    user_email: str = Field(index=True)
    approval_status: str
    registered_at: datetime | None = None
    checked_in_at: datetime | None = None
    ticket_type_id: str | None = None
    ticket_type_name: str | None = None
    ticket_amount: int | None = None
    last_synced_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
