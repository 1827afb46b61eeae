"""
SQL Data Store
SQLAlchemy implementation of the medication data store, used for local
development and the test-suite
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import selectinload

import models
from database import SessionLocal, get_db_context
from models import UserRole
from schemas import AuthUser, DoseLog, Medication, MedicationWithLogs, Profile
from services.data_store import (
    MedicationDataStore,
    validate_medication_fields,
    validate_profile_fields,
    with_retry,
)
from services.errors import (
    BackendError,
    ConflictError,
    NotFoundError,
    NotFoundOrAccessDenied,
    ReferentialError,
)


logger = logging.getLogger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive values; everything is stored as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _map_integrity_error(error: IntegrityError) -> Exception:
    pgcode = getattr(error.orig, "pgcode", None)
    text = str(error.orig).lower()
    if pgcode == "23505" or "unique" in text:
        return ConflictError()
    if pgcode == "23503" or "foreign key" in text:
        return ReferentialError()
    return BackendError(str(error.orig))


def _to_dose_log(log: models.MedicationLog) -> DoseLog:
    return DoseLog(
        id=log.id,
        medication_id=log.medication_id,
        user_id=log.user_id,
        taken_at=_utc(log.taken_at),
        notes=log.notes,
        photo_url=log.photo_url,
        created_at=_utc(log.created_at),
    )


def _to_medication(med: models.Medication) -> Medication:
    return Medication(
        id=med.id,
        user_id=med.user_id,
        name=med.name,
        dosage=med.dosage,
        frequency=med.frequency,
        created_at=_utc(med.created_at),
        updated_at=_utc(med.updated_at),
    )


def _to_medication_with_logs(med: models.Medication) -> MedicationWithLogs:
    return MedicationWithLogs(
        **dict(_to_medication(med)),
        medication_logs=tuple(_to_dose_log(log) for log in med.medication_logs),
    )


def _to_profile(profile: models.Profile) -> Profile:
    return Profile(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        full_name=profile.full_name,
        created_at=_utc(profile.created_at),
        updated_at=_utc(profile.updated_at),
    )


class SQLDataStore(MedicationDataStore):
    """
    Medication data store backed by a SQLAlchemy session factory
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal

    def _session(self):
        return get_db_context(self._session_factory)

    async def list_medications(self, user_id: str) -> List[MedicationWithLogs]:
        async def _fetch() -> List[MedicationWithLogs]:
            try:
                with self._session() as session:
                    medications = session.query(models.Medication).options(
                        selectinload(models.Medication.medication_logs)
                    ).filter(
                        models.Medication.user_id == user_id
                    ).order_by(
                        models.Medication.created_at.desc()
                    ).all()

                    return [_to_medication_with_logs(m) for m in medications]
            except OperationalError as e:
                raise BackendError(str(e.orig), retryable=True) from e

        return await with_retry(_fetch)

    async def insert_medication(
        self,
        user_id: str,
        name: str,
        dosage: str,
        frequency: str
    ) -> Medication:
        fields = validate_medication_fields(
            {"name": name, "dosage": dosage, "frequency": frequency}
        )
        try:
            with self._session() as session:
                medication = models.Medication(user_id=user_id, **fields)
                session.add(medication)
                session.flush()

                logger.info(f"Added medication {medication.name} for user {user_id}")
                return _to_medication(medication)
        except IntegrityError as e:
            raise _map_integrity_error(e) from e

    async def update_medication(
        self,
        medication_id: str,
        user_id: str,
        fields: Dict[str, Any]
    ) -> Medication:
        updates = validate_medication_fields(fields, partial=True)
        try:
            with self._session() as session:
                medication = session.query(models.Medication).filter(
                    models.Medication.id == medication_id,
                    models.Medication.user_id == user_id
                ).first()

                if not medication:
                    raise NotFoundError(f"Medication {medication_id} not found")

                for field, value in updates.items():
                    setattr(medication, field, value)
                medication.updated_at = datetime.now(timezone.utc)
                session.flush()

                return _to_medication(medication)
        except IntegrityError as e:
            raise _map_integrity_error(e) from e

    async def delete_medication(self, medication_id: str, user_id: str) -> None:
        try:
            with self._session() as session:
                medication = session.query(models.Medication).filter(
                    models.Medication.id == medication_id,
                    models.Medication.user_id == user_id
                ).first()

                if not medication:
                    raise NotFoundError(f"Medication {medication_id} not found")

                session.delete(medication)
                session.flush()
                logger.info(f"Deleted medication {medication_id} for user {user_id}")
        except IntegrityError as e:
            raise _map_integrity_error(e) from e

    async def insert_dose_log(
        self,
        user_id: str,
        medication_id: str,
        taken_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None
    ) -> DoseLog:
        try:
            with self._session() as session:
                owned = session.query(models.Medication.id).filter(
                    models.Medication.id == medication_id,
                    models.Medication.user_id == user_id
                ).first()

                if not owned:
                    raise NotFoundOrAccessDenied()

                log = models.MedicationLog(
                    medication_id=medication_id,
                    user_id=user_id,
                    taken_at=_utc(taken_at) or datetime.now(timezone.utc),
                    notes=notes,
                    photo_url=photo_url,
                )
                session.add(log)
                session.flush()

                logger.info(f"Logged dose of medication {medication_id} for user {user_id}")
                return _to_dose_log(log)
        except IntegrityError as e:
            error = _map_integrity_error(e)
            # Medication removed after the ownership check
            if isinstance(error, ReferentialError):
                raise NotFoundOrAccessDenied() from e
            raise error from e

    async def get_profile(self, user_id: str) -> Profile:
        with self._session() as session:
            profile = session.get(models.Profile, user_id)
            if not profile:
                raise NotFoundError(f"Profile {user_id} not found")
            return _to_profile(profile)

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        updates = validate_profile_fields(fields)
        with self._session() as session:
            profile = session.get(models.Profile, user_id)
            if not profile:
                raise NotFoundError(f"Profile {user_id} not found")

            for field, value in updates.items():
                setattr(profile, field, value)
            profile.updated_at = datetime.now(timezone.utc)
            session.flush()

            return _to_profile(profile)

    async def ensure_profile(self, user: AuthUser, role: UserRole = UserRole.PATIENT) -> Profile:
        """Create the profile row on first sight of a user, as the hosted backend's signup hook does"""
        try:
            with self._session() as session:
                profile = session.get(models.Profile, user.id)
                if not profile:
                    profile = models.Profile(
                        id=user.id,
                        email=(user.email or f"{user.id}@users.local").strip().lower(),
                        role=role,
                    )
                    session.add(profile)
                    session.flush()
                    logger.info(f"Created {role.value} profile for user {user.id}")
                return _to_profile(profile)
        except IntegrityError as e:
            raise _map_integrity_error(e) from e
