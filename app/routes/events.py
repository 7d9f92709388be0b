"""Read-only routes over the synchronized events and their attendance."""
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.core.database import get_session
from app.models import AttendanceRecord, Event

router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
async def list_events(
    upcoming: bool = False,
    limit: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
) -> list[Event]:
    """
    List synced events ordered by start time.

    With ``upcoming=true`` only events that have not ended yet are returned.
    """
    statement = select(Event).order_by(Event.start_time).limit(limit)
    if upcoming:
        statement = statement.where(Event.end_time >= datetime.now(UTC))
    return list(session.exec(statement).all())


@router.get("/{api_id}")
async def get_event(api_id: str, session: Session = Depends(get_session)) -> Event:
    event = session.exec(select(Event).where(Event.api_id == api_id)).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.get("/{api_id}/attendance")
async def event_attendance(
    api_id: str, session: Session = Depends(get_session)
) -> list[AttendanceRecord]:
    """Approved guests of an event, as of its last attendance sync."""
    event = session.exec(select(Event).where(Event.api_id == api_id)).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    statement = (
        select(AttendanceRecord)
        .where(AttendanceRecord.event_api_id == api_id)
        .order_by(AttendanceRecord.registered_at)
    )
    return list(session.exec(statement).all())
