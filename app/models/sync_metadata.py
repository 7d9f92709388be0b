"""Key/value metadata owned by the sync engine."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class SyncMetadata(SQLModel, table=True):
    """A single persisted sync setting, such as the watermark."""
    __tablename__ = "sync_metadata"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(index=True, unique=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
