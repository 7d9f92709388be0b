"""Read-only routes over the synchronized directory members."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlmodel import Session, select

from app.core.database import get_session
from app.models import Person

router = APIRouter(prefix="/people", tags=["people"])


@router.get("")
async def list_people(
    email: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
) -> list[Person]:
    """List synced people, optionally filtered by email (case-insensitive)."""
    statement = select(Person).order_by(Person.id).offset(offset).limit(limit)
    if email:
        statement = statement.where(func.lower(Person.email) == email.lower())
    return list(session.exec(statement).all())


@router.get("/{api_id}")
async def get_person(api_id: str, session: Session = Depends(get_session)) -> Person:
    person = session.exec(select(Person).where(Person.api_id == api_id)).first()
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    return person
