"""
Database Models
SQLAlchemy ORM models for MedTrack
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Enum, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum as PyEnum

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENUMS ====================

class UserRole(str, PyEnum):
    """Which dashboard a user sees"""
    PATIENT = "patient"
    CARETAKER = "caretaker"


class MedicationFrequency(str, PyEnum):
    """How often a medication is taken"""
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    AS_NEEDED = "as_needed"
    WEEKLY = "weekly"

    @property
    def label(self) -> str:
        return FREQUENCY_LABELS[self]


FREQUENCY_LABELS = {
    MedicationFrequency.ONCE_DAILY: "Once daily",
    MedicationFrequency.TWICE_DAILY: "Twice daily",
    MedicationFrequency.THREE_TIMES_DAILY: "3x daily",
    MedicationFrequency.FOUR_TIMES_DAILY: "4x daily",
    MedicationFrequency.AS_NEEDED: "As needed",
    MedicationFrequency.WEEKLY: "Weekly",
}


# ==================== MODELS ====================

class Profile(Base):
    """User profile; id matches the identity provider's user id"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, default=UserRole.PATIENT)
    full_name = Column(String(255))

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    medications = relationship("Medication", back_populates="owner", cascade="all, delete-orphan")


class Medication(Base):
    """A medication registered by its owner"""
    __tablename__ = "medications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    dosage = Column(String(50), nullable=False)  # e.g., "500mg"
    frequency = Column(String(32), nullable=False)  # MedicationFrequency value

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = relationship("Profile", back_populates="medications")
    # No cascade: a medication with logs cannot be deleted
    medication_logs = relationship("MedicationLog", back_populates="medication", passive_deletes="all")

    __table_args__ = (
        UniqueConstraint("user_id", "name", "dosage", name="uq_medication_user_name_dosage"),
    )


class MedicationLog(Base):
    """Immutable record of a dose taken"""
    __tablename__ = "medication_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    medication_id = Column(String(36), ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    taken_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    notes = Column(Text)
    photo_url = Column(String(500))

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    medication = relationship("Medication", back_populates="medication_logs")

    __table_args__ = (
        Index("ix_medication_logs_medication_taken", "medication_id", "taken_at"),
    )
