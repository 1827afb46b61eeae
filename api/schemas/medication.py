"""
Medication Schemas
Pydantic models for medication-related API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, computed_field

from models import MedicationFrequency
from schemas import Timestamp


# ==================== BASE SCHEMAS ====================

class MedicationBase(BaseModel):
    """Base medication schema"""
    name: str = Field(..., min_length=1, max_length=100)
    dosage: str = Field(..., min_length=1, max_length=50)


# ==================== REQUEST SCHEMAS ====================

class MedicationCreate(MedicationBase):
    """Schema for creating a new medication"""
    frequency: MedicationFrequency

    model_config = ConfigDict(str_strip_whitespace=True)


class MedicationUpdate(BaseModel):
    """Schema for updating medication"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    dosage: Optional[str] = Field(None, min_length=1, max_length=50)
    frequency: Optional[MedicationFrequency] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class DoseTaken(BaseModel):
    """Schema for marking a dose taken"""
    taken_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=500)
    photo_url: Optional[str] = Field(None, max_length=500)


# ==================== RESPONSE SCHEMAS ====================

class DoseLogResponse(BaseModel):
    """Schema for a dose log"""
    id: str
    medication_id: str
    user_id: str
    taken_at: Timestamp
    notes: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[Timestamp] = None

    model_config = ConfigDict(from_attributes=True)


class MedicationResponse(MedicationBase):
    """Schema for medication response"""
    id: str
    user_id: str
    frequency: str
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def frequency_label(self) -> str:
        try:
            return MedicationFrequency(self.frequency).label
        except ValueError:
            return self.frequency


class MedicationWithLogsResponse(MedicationResponse):
    """Medication with its dose history"""
    medication_logs: List[DoseLogResponse] = []
    last_taken_at: Optional[datetime] = None


class TodaysMedicationResponse(MedicationWithLogsResponse):
    """Medication flagged with whether today's dose is logged"""
    taken_today: bool = False


class MedicationList(BaseModel):
    """List of medications"""
    medications: List[MedicationWithLogsResponse]
    total: int


class TodaysMedicationList(BaseModel):
    """Today's checklist"""
    medications: List[TodaysMedicationResponse]
    total: int
    taken_count: int


class MarkTakenResponse(BaseModel):
    """Result of marking a dose taken"""
    status: str
    log: DoseLogResponse
    medications: Optional[List[MedicationWithLogsResponse]] = None
