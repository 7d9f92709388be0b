"""Persistence of the last-successful-sync watermark."""
from datetime import UTC, datetime

from sqlmodel import Session, select

from app.models import SyncMetadata

WATERMARK_KEY = "last_sync_completed_at"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def get_watermark(session: Session) -> datetime:
    """Return the stored watermark, or the epoch for a never-synced store."""
    entry = session.exec(select(SyncMetadata).where(SyncMetadata.key == WATERMARK_KEY)).first()
    if entry is None:
        return EPOCH
    value = datetime.fromisoformat(entry.value)
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def set_watermark(session: Session, value: datetime) -> None:
    """Store ``value`` as the watermark and commit."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)

    entry = session.exec(select(SyncMetadata).where(SyncMetadata.key == WATERMARK_KEY)).first()
    if entry is None:
        entry = SyncMetadata(key=WATERMARK_KEY, value="")
    entry.value = value.astimezone(UTC).isoformat()
    entry.updated_at = datetime.now(UTC)
    session.add(entry)
    session.commit()
