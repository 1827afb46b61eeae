"""
Data Store Interface
Fixed contract between the services and whatever backend persists medications
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from config import settings
from models import MedicationFrequency, UserRole
from schemas import AuthUser, DoseLog, Medication, MedicationWithLogs, Profile
from services.errors import DataStoreError, ValidationError


logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_NAME_LENGTH = 100
MAX_DOSAGE_LENGTH = 50
UPDATABLE_MEDICATION_FIELDS = {"name", "dosage", "frequency"}
UPDATABLE_PROFILE_FIELDS = {"role", "full_name"}


class MedicationDataStore(ABC):
    """
    Backend-agnostic medication persistence.

    Every method is scoped to the acting user; records owned by someone else
    are reported exactly like missing ones.
    """

    @abstractmethod
    async def list_medications(self, user_id: str) -> List[MedicationWithLogs]:
        """All of the user's medications with their dose logs, newest first"""

    @abstractmethod
    async def insert_medication(
        self,
        user_id: str,
        name: str,
        dosage: str,
        frequency: str
    ) -> Medication:
        ...

    @abstractmethod
    async def update_medication(
        self,
        medication_id: str,
        user_id: str,
        fields: Dict[str, Any]
    ) -> Medication:
        ...

    @abstractmethod
    async def delete_medication(self, medication_id: str, user_id: str) -> None:
        ...

    @abstractmethod
    async def insert_dose_log(
        self,
        user_id: str,
        medication_id: str,
        taken_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None
    ) -> DoseLog:
        """Raises NotFoundOrAccessDenied when medication_id is not owned by user_id"""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile:
        ...

    @abstractmethod
    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        ...

    async def ensure_profile(self, user: AuthUser, role: UserRole = UserRole.PATIENT) -> Profile:
        """Profile for an authenticated user; hosted backends create it at signup"""
        return await self.get_profile(user.id)

    async def close(self) -> None:
        """Release any held resources"""


def validate_medication_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Trim and check medication fields.

    Args:
        fields: Candidate values for name, dosage and frequency
        partial: Only validate the keys present (updates)

    Returns:
        Cleaned values restricted to the updatable fields
    """
    unknown = set(fields) - UPDATABLE_MEDICATION_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    cleaned: Dict[str, Any] = {}
    limits = {"name": MAX_NAME_LENGTH, "dosage": MAX_DOSAGE_LENGTH}
    for field, limit in limits.items():
        if field not in fields and partial:
            continue
        raw = fields.get(field)
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            raise ValidationError(f"Medication {field} is required")
        if len(value) > limit:
            raise ValidationError(f"Medication {field} must be less than {limit} characters")
        cleaned[field] = value

    if "frequency" in fields or not partial:
        frequency = fields.get("frequency")
        if isinstance(frequency, MedicationFrequency):
            frequency = frequency.value
        if frequency not in {f.value for f in MedicationFrequency}:
            raise ValidationError("Please select a frequency")
        cleaned["frequency"] = frequency

    return cleaned


def validate_profile_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Restrict profile updates to role and full_name, coercing role to UserRole"""
    unknown = set(fields) - UPDATABLE_PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    updates = dict(fields)
    if "role" in updates:
        try:
            updates["role"] = UserRole(updates["role"])
        except ValueError:
            raise ValidationError(f"Unknown role: {updates['role']}")
    if updates.get("full_name") is not None:
        updates["full_name"] = updates["full_name"].strip() or None
    return updates


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None
) -> T:
    """
    Run an async data-access call with bounded retries.

    Only errors flagged retryable (network failures, 5xx backend failures)
    are retried; authentication and every other kind propagate at once.
    """
    attempts = attempts or settings.RETRY_ATTEMPTS
    delay = settings.RETRY_BASE_DELAY if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except DataStoreError as e:
            if not e.retryable or attempt == attempts:
                raise
            logger.warning(
                f"Transient data store failure ({type(e).__name__}: {e.message}), "
                f"retry {attempt}/{attempts - 1}"
            )
            await asyncio.sleep(delay * (2 ** (attempt - 1)))

    raise RuntimeError("unreachable")  # pragma: no cover
