"""Person model for directory members synced from upstream."""

from datetime import datetime

from sqlmodel import Field, SQLModel


class Person(SQLModel, table=True):
    """A member of the upstream directory.

    Email is not unique: upstream may reuse an address across accounts over
    time. ``api_id`` is the natural key used by the upserter.
    """
    id: int | None = Field(default=None, primary_key=True)
    api_id: str = Field(index=True, unique=True)
    email: str = Field(index=True)
    user_name: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    role: str | None = None
    phone_number: str | None = None
    bio: str | None = None
    organization_name: str | None = None
    job_title: str | None = None
    created_at: datetime | None = None
