"""Locally registered user accounts."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class LocalUser(SQLModel, table=True):
    """A locally registered account.

    Users have their own lifecycle; the link to a synced Person is derived
    from a case-insensitive email match and rebuilt by the reconciler after
    every people batch. Users still unlinked at the end of a pass are matched
    against all stored people.

    Attributes:
        id: Local surrogate key.
        email: Login email, as the user typed it.
        display_name: Optional display name.
        is_admin: Whether the user may trigger syncs from the admin UI.
        created_at: Registration time.
        person_id: Matching Person row, or None when no Person shares the
            user's email. Only written by the reconciler.
    """
    __tablename__ = "local_user"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    display_name: str | None = None
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    person_id: int | None = Field(default=None, foreign_key="person.id", index=True)
