"""
Adherence API Router
Endpoints for adherence statistics and role dashboards
"""

from typing import Optional, Union
from datetime import date
from fastapi import APIRouter, Depends, Query

from api.deps import get_current_profile, get_medication_service
from api.schemas.adherence import (
    AdherenceAlertResponse,
    AdherenceStatsEnvelope,
    AdherenceStatsResponse,
    CaretakerDashboard,
    PatientDashboard,
)
from api.schemas.medication import TodaysMedicationResponse
from models import UserRole
from schemas import Profile
from services.adherence_service import as_day
from services.medication_service import MedicationService


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/stats", response_model=AdherenceStatsEnvelope)
async def get_adherence_stats(
    as_of: Optional[date] = Query(None, description="Last day of the 30-day window, defaults to today"),
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Percentage of days with a dose over the window, and the current streak
    """
    day = as_day(as_of)
    stats = await service.get_adherence_stats(profile.id, as_of=day)

    return AdherenceStatsEnvelope(**stats.model_dump(), as_of=day)


@router.get("/dashboard", response_model=Union[PatientDashboard, CaretakerDashboard])
async def get_dashboard(
    as_of: Optional[date] = Query(None),
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Dashboard for the user's current role
    """
    day = as_day(as_of)
    data = await service.get_dashboard(profile.id, profile.role, as_of=day)
    stats = AdherenceStatsResponse.model_validate(data["stats"])

    if profile.role == UserRole.CARETAKER:
        return CaretakerDashboard(
            as_of=day,
            stats=stats,
            missed_days=data["missed_days"],
            total_medications=data["total_medications"],
            todays_medications=[
                TodaysMedicationResponse.model_validate(m) for m in data["todays_medications"]
            ],
            alerts=[AdherenceAlertResponse.model_validate(a) for a in data["alerts"]]
        )

    return PatientDashboard(
        as_of=day,
        stats=stats,
        todays_medications=[
            TodaysMedicationResponse.model_validate(m) for m in data["todays_medications"]
        ],
        taken_today_count=data["taken_today_count"],
        total_medications=data["total_medications"]
    )
