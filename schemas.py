"""
Domain Records
Immutable pydantic models shared by the data stores, the cache and the services
"""

from typing import Optional, Tuple, Union, Any
from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from config import settings
from models import UserRole


Timestamp = Union[datetime, str]

_DATETIME = TypeAdapter(datetime)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp.

    Returns None for anything that is not a datetime or a parseable string;
    never raises.
    """
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _DATETIME.validate_python(text)
    except ValidationError:
        return None


def localize(value: Optional[datetime] = None) -> datetime:
    """Timezone-aware instant; naive values are read as display-timezone wall time"""
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return value


def local_date(value: Any, tz: Optional[str] = None) -> Optional[date]:
    """Calendar day of a timestamp in the display timezone (naive values are already local)"""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(ZoneInfo(tz or settings.TIMEZONE))
        except (OverflowError, ValueError):
            return None
    return parsed.date()


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class DoseLog(Record):
    """A dose taken; never edited once created"""
    id: str
    medication_id: str
    user_id: str
    taken_at: Timestamp
    notes: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[Timestamp] = None


class Medication(Record):
    id: str
    user_id: str
    name: str
    dosage: str
    frequency: str
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None


class MedicationWithLogs(Medication):
    medication_logs: Tuple[DoseLog, ...] = ()

    @property
    def last_taken_at(self) -> Optional[datetime]:
        """Most recent parseable taken_at, regardless of log order"""
        stamps = [parse_timestamp(log.taken_at) for log in self.medication_logs]
        stamps = [localize(s) for s in stamps if s is not None]
        return max(stamps) if stamps else None

    def with_log(self, log: DoseLog) -> "MedicationWithLogs":
        return self.model_copy(update={"medication_logs": self.medication_logs + (log,)})

    def without_log(self, log_id: str) -> "MedicationWithLogs":
        return self.model_copy(
            update={"medication_logs": tuple(l for l in self.medication_logs if l.id != log_id)}
        )


class TodaysMedication(MedicationWithLogs):
    taken_today: bool = False


class AdherenceStats(Record):
    total_days: int = 0
    taken_days: int = 0
    adherence_percentage: int = 0
    current_streak: int = 0


class AdherenceAlert(Record):
    """Caretaker notice derived from the adherence figures"""
    kind: str
    title: str
    message: str


class Profile(Record):
    id: str
    email: str
    role: UserRole = UserRole.PATIENT
    full_name: Optional[str] = None
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None


class AuthUser(Record):
    """Identity-provider user resolved from a bearer token"""
    id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
