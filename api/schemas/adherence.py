"""
Adherence Schemas
Pydantic models for adherence statistics and dashboards
"""

from typing import List
from datetime import date
from pydantic import BaseModel, ConfigDict, Field

from models import UserRole
from api.schemas.medication import TodaysMedicationResponse


class AdherenceStatsResponse(BaseModel):
    """Rolling-window adherence statistics"""
    total_days: int = Field(..., ge=0)
    taken_days: int = Field(..., ge=0)
    adherence_percentage: int = Field(..., ge=0, le=100)
    current_streak: int = Field(..., ge=0)

    model_config = ConfigDict(from_attributes=True)


class AdherenceStatsEnvelope(AdherenceStatsResponse):
    """Statistics with the day they were evaluated for"""
    as_of: date


class PatientDashboard(BaseModel):
    """What a patient sees"""
    role: UserRole = UserRole.PATIENT
    as_of: date
    stats: AdherenceStatsResponse
    todays_medications: List[TodaysMedicationResponse]
    taken_today_count: int
    total_medications: int


class AdherenceAlertResponse(BaseModel):
    """Caretaker notice"""
    kind: str
    title: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class CaretakerDashboard(BaseModel):
    """What a caretaker sees"""
    role: UserRole = UserRole.CARETAKER
    as_of: date
    stats: AdherenceStatsResponse
    missed_days: int
    total_medications: int
    todays_medications: List[TodaysMedicationResponse]
    alerts: List[AdherenceAlertResponse]
