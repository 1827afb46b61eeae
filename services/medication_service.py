"""
Medication Service
Business logic for medication management and optimistic dose logging
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from config import settings
from models import UserRole
from schemas import (
    AdherenceStats,
    DoseLog,
    Medication,
    MedicationWithLogs,
    Profile,
    TodaysMedication,
    localize,
)
from services.adherence_service import (
    caretaker_summary,
    compute_adherence,
    taken_on,
    todays_medications,
    as_day,
)
from services.data_store import MedicationDataStore
from services.errors import ConflictError, DataStoreError
from services.medication_cache import CacheKey, MedicationCache, MedicationList, medications_key


logger = logging.getLogger(__name__)


class MutationState(str, Enum):
    """Lifecycle of the optimistic patch for one cache key"""
    CLEAN = "clean"
    PENDING = "pending"
    COMMITTED = "committed"


class MutationStatus(str, Enum):
    """What callers observe about the latest mark-taken call"""
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class MutationTracker:
    state: MutationState = MutationState.CLEAN
    status: MutationStatus = MutationStatus.IDLE
    snapshot: Optional[MedicationList] = None
    provisional_id: Optional[str] = None
    published_version: Optional[int] = None
    error: Optional[Exception] = None
    waiting: int = 0

    def begin(self, snapshot: MedicationList, provisional_id: str, version: Optional[int]) -> None:
        self.state = MutationState.PENDING
        self.snapshot = snapshot
        self.provisional_id = provisional_id
        self.published_version = version

    def reset(self) -> None:
        self.state = MutationState.CLEAN
        self.snapshot = None
        self.provisional_id = None
        self.published_version = None


@dataclass
class MarkTakenResult:
    status: MutationStatus
    log: DoseLog
    provisional_id: str
    medications: Optional[List[MedicationWithLogs]] = field(default=None)


class MedicationService:
    """
    Medication reads and writes for one data store, with a shared cache.

    Reads are served from the cache and fetched on a miss. Every mutation
    runs under the cache key's lock and ends by invalidating and refetching
    the authoritative list.
    """

    def __init__(
        self,
        data_store: MedicationDataStore,
        cache: Optional[MedicationCache] = None
    ):
        self.data_store = data_store
        self.cache = cache or MedicationCache()
        self._trackers: Dict[CacheKey, MutationTracker] = {}

    # ==================== READS ====================

    async def get_medications(
        self,
        user_id: str,
        refresh: bool = False
    ) -> List[MedicationWithLogs]:
        """Cached medication list, fetched from the data store on a miss"""
        cached = self.cache.get(medications_key(user_id))
        if cached is not None and not refresh:
            return list(cached)
        return await self._fetch(user_id)

    async def _fetch(self, user_id: str) -> List[MedicationWithLogs]:
        medications = await self.data_store.list_medications(user_id)
        self.cache.set(medications_key(user_id), medications)
        return list(medications)

    async def _refetch_after_write(self, user_id: str) -> Optional[List[MedicationWithLogs]]:
        key = medications_key(user_id)
        self.cache.invalidate(key)
        try:
            return await self._fetch(user_id)
        except DataStoreError as e:
            # The write stands; the next read fetches again
            logger.warning(f"Refetch of medications for user {user_id} failed after write: {e.message}")
            return None

    async def get_adherence_stats(
        self,
        user_id: str,
        as_of: Union[date, datetime, None] = None
    ) -> AdherenceStats:
        return compute_adherence(await self.get_medications(user_id), as_of=as_of)

    async def get_todays_medications(
        self,
        user_id: str,
        as_of: Union[date, datetime, None] = None
    ) -> List[TodaysMedication]:
        return todays_medications(await self.get_medications(user_id), as_of=as_of)

    async def get_dashboard(
        self,
        user_id: str,
        role: UserRole,
        as_of: Union[date, datetime, None] = None
    ) -> Dict[str, Any]:
        """
        Role-specific dashboard data

        Patients see their stats and today's checklist; caretakers see the
        monitoring summary (missed days, medication count).
        """
        medications = await self.get_medications(user_id)

        if role == UserRole.CARETAKER:
            return {"role": role, **caretaker_summary(medications, as_of=as_of)}

        today = todays_medications(medications, as_of=as_of)
        return {
            "role": role,
            "stats": compute_adherence(medications, as_of=as_of),
            "todays_medications": today,
            "taken_today_count": sum(1 for m in today if m.taken_today),
            "total_medications": len(medications),
        }

    # ==================== MEDICATION WRITES ====================

    async def add_medication(
        self,
        user_id: str,
        name: str,
        dosage: str,
        frequency: str
    ) -> Medication:
        async with self.cache.hold(medications_key(user_id)):
            medication = await self.data_store.insert_medication(user_id, name, dosage, frequency)
            await self._refetch_after_write(user_id)
        return medication

    async def update_medication(
        self,
        user_id: str,
        medication_id: str,
        fields: Dict[str, Any]
    ) -> Medication:
        async with self.cache.hold(medications_key(user_id)):
            medication = await self.data_store.update_medication(medication_id, user_id, fields)
            await self._refetch_after_write(user_id)
        return medication

    async def delete_medication(self, user_id: str, medication_id: str) -> None:
        async with self.cache.hold(medications_key(user_id)):
            await self.data_store.delete_medication(medication_id, user_id)
            await self._refetch_after_write(user_id)

    # ==================== OPTIMISTIC DOSE LOGGING ====================

    def mutation_tracker(self, user_id: str) -> MutationTracker:
        """
        Tracker shared by the user's mark-taken calls.

        It is dropped from the registry when the last call finishes; a caller
        holding it still sees the final status and error.
        """
        key = medications_key(user_id)
        tracker = self._trackers.get(key)
        if tracker is None:
            tracker = self._trackers[key] = MutationTracker()
        return tracker

    def is_marking_taken(self, user_id: str) -> bool:
        tracker = self._trackers.get(medications_key(user_id))
        if tracker is None:
            return False
        return tracker.state == MutationState.PENDING or tracker.waiting > 0

    async def mark_taken(
        self,
        user_id: str,
        medication_id: str,
        taken_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None,
        allow_duplicate_today: bool = True
    ) -> MarkTakenResult:
        """
        Record a dose with an optimistic cache patch

        The provisional log is visible in the cached list before the write
        resolves. On failure the cache is restored and the error re-raised;
        on success the list is refetched so the provisional id is dropped.

        Args:
            user_id: Acting user; must own the medication
            medication_id: Medication the dose belongs to
            taken_at: When the dose was taken, now if omitted; a naive value
                is wall time in the display timezone
            notes: Free-text note
            photo_url: Reference to a photo of the dose
            allow_duplicate_today: Refuse a second dose on the same day when False

        Raises:
            NotFoundOrAccessDenied: medication not owned by user_id
            ConflictError: already taken today and duplicates not allowed
        """
        key = medications_key(user_id)
        tracker = self.mutation_tracker(user_id)
        tracker.status = MutationStatus.PENDING
        tracker.error = None
        taken_at = localize(taken_at)

        tracker.waiting += 1
        queued = True
        try:
            async with self.cache.hold(key):
                tracker.waiting -= 1
                queued = False
                return await self._mark_taken_locked(
                    key, tracker, user_id, medication_id, taken_at,
                    notes, photo_url, allow_duplicate_today
                )
        finally:
            if queued:
                tracker.waiting -= 1
            self._release_tracker(key, tracker)

    async def _mark_taken_locked(
        self,
        key: CacheKey,
        tracker: MutationTracker,
        user_id: str,
        medication_id: str,
        taken_at: datetime,
        notes: Optional[str],
        photo_url: Optional[str],
        allow_duplicate_today: bool
    ) -> MarkTakenResult:
        try:
            snapshot = self.cache.get(key)
            if snapshot is None:
                snapshot = tuple(await self._fetch(user_id))

            if not allow_duplicate_today:
                self._check_not_taken_today(snapshot, medication_id, taken_at)

            provisional = self._provisional_log(user_id, medication_id, taken_at, notes, photo_url)
            version = self._publish_patch(key, snapshot, provisional)
            tracker.begin(snapshot, provisional.id, version)
        except Exception as e:
            tracker.status = MutationStatus.ERROR
            tracker.error = e
            raise

        try:
            log = await self.data_store.insert_dose_log(
                user_id,
                medication_id,
                taken_at=taken_at,
                notes=notes,
                photo_url=photo_url
            )
        except BaseException as e:
            self._rollback(key, tracker)
            tracker.reset()
            tracker.status = MutationStatus.ERROR
            tracker.error = e if isinstance(e, Exception) else None
            logger.warning(
                f"Dose log for medication {medication_id} failed, cache restored: "
                f"{getattr(e, 'message', e)!s}"
            )
            raise

        tracker.state = MutationState.COMMITTED
        medications = await self._refetch_after_write(user_id)
        tracker.reset()
        tracker.status = MutationStatus.SUCCESS

        logger.info(f"Marked medication {medication_id} taken for user {user_id}")
        return MarkTakenResult(
            status=MutationStatus.SUCCESS,
            log=log,
            provisional_id=provisional.id,
            medications=medications,
        )

    def _release_tracker(self, key: CacheKey, tracker: MutationTracker) -> None:
        if tracker.waiting or tracker.state != MutationState.CLEAN:
            return
        if self._trackers.get(key) is tracker:
            del self._trackers[key]

    def _check_not_taken_today(
        self,
        snapshot: MedicationList,
        medication_id: str,
        taken_at: datetime
    ) -> None:
        day = as_day(taken_at)
        for medication in snapshot:
            if medication.id == medication_id and taken_on(medication, day):
                raise ConflictError("Medication already marked as taken today")

    def _provisional_log(
        self,
        user_id: str,
        medication_id: str,
        taken_at: datetime,
        notes: Optional[str],
        photo_url: Optional[str]
    ) -> DoseLog:
        return DoseLog(
            id=f"{settings.TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            medication_id=medication_id,
            user_id=user_id,
            taken_at=taken_at,
            notes=notes,
            photo_url=photo_url,
            created_at=datetime.now(timezone.utc),
        )

    def _publish_patch(
        self,
        key: CacheKey,
        snapshot: MedicationList,
        provisional: DoseLog
    ) -> Optional[int]:
        """Append the provisional log to its medication; None if the medication is not cached"""
        if not any(m.id == provisional.medication_id for m in snapshot):
            return None
        patched = tuple(
            m.with_log(provisional) if m.id == provisional.medication_id else m
            for m in snapshot
        )
        return self.cache.set(key, patched)

    def _rollback(self, key: CacheKey, tracker: MutationTracker) -> None:
        """
        Undo the provisional patch.

        Restores the snapshot when the cache still holds our patch; if someone
        published since, only the provisional log is removed from their list.
        """
        if tracker.published_version is None:
            return
        if self.cache.compare_and_set(key, tracker.published_version, tracker.snapshot):
            return

        current = self.cache.get(key)
        if current is None:
            return
        self.cache.set(key, tuple(
            m.without_log(tracker.provisional_id)
            if any(log.id == tracker.provisional_id for log in m.medication_logs) else m
            for m in current
        ))

    # ==================== PROFILE ====================

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        return await self.data_store.update_profile(user_id, fields)

    async def switch_role(self, user_id: str, role: Optional[UserRole] = None) -> Profile:
        """Set the profile's role, or flip between patient and caretaker"""
        if role is None:
            current = await self.data_store.get_profile(user_id)
            role = UserRole.CARETAKER if current.role == UserRole.PATIENT else UserRole.PATIENT
        profile = await self.data_store.update_profile(user_id, {"role": role})
        logger.info(f"User {user_id} switched to {role.value} view")
        return profile
