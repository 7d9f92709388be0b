from app.models.attendance import AttendanceRecord
from app.models.event import Event
from app.models.person import Person
from app.models.sync_metadata import SyncMetadata
from app.models.user import LocalUser

__all__ = ["Event", "Person", "LocalUser", "AttendanceRecord", "SyncMetadata"]
