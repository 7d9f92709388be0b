"""Event model for events synced from the upstream directory.

Events are written only by the sync engine's batch upserter, keyed by the
upstream ``api_id``. Every upstream-mapped column is overwritten on each
sync; rows are removed only by the administrative full clear.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class Event(SQLModel, table=True):
    """An event synced from the upstream directory.

    Attributes:
        id: Local surrogate key.
        api_id: The event ID from the upstream directory (unique).
        title: Event name.
        description: Free-form event description.
        start_time: When the event starts (UTC).
        end_time: When the event ends (UTC).
        location: Address blob (city, region, country, latitude, longitude,
            full_address), or None for online events.
        visibility: Upstream visibility flag ("public", "private", ...).
        url: Public event page.
        cover_url: Cover image.
        meeting_url: Online meeting link, if any.
        timezone: IANA timezone name the event is scheduled in.
        calendar_api_id: Upstream calendar the event belongs to.
        created_at: When the event was created upstream.
        attendance_synced_at: Last time the guest list was re-derived.
            Maintained by the attendance sync, never by the upserter.
    """
    id: int | None = Field(default=None, primary_key=True)
    api_id: str = Field(index=True, unique=True)
    title: str
    description: str | None = None
    start_time: datetime = Field(index=True)
    end_time: datetime = Field(index=True)
    location: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    visibility: str | None = None
    url: str | None = None
    cover_url: str | None = None
    meeting_url: str | None = None
    timezone: str | None = None
    calendar_api_id: str | None = None
    created_at: datetime | None = None
    attendance_synced_at: datetime | None = None
