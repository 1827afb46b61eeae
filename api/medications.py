"""
Medications API Router
Endpoints for medication management and dose logging
"""

from fastapi import APIRouter, Depends, Query, Response, status

from api.deps import get_current_profile, get_medication_service
from api.schemas.medication import (
    DoseTaken,
    MarkTakenResponse,
    MedicationCreate,
    MedicationList,
    MedicationResponse,
    MedicationUpdate,
    MedicationWithLogsResponse,
    TodaysMedicationList,
    TodaysMedicationResponse,
)
from schemas import Profile
from services.errors import NotFoundError
from services.medication_service import MedicationService


router = APIRouter(prefix="/medications", tags=["medications"])


@router.get("/", response_model=MedicationList)
async def list_medications(
    refresh: bool = Query(False, description="Bypass the cache and refetch"),
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Get the user's medications with their dose logs, newest first
    """
    medications = await service.get_medications(profile.id, refresh=refresh)

    return MedicationList(
        medications=[MedicationWithLogsResponse.model_validate(m) for m in medications],
        total=len(medications)
    )


@router.post("/", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
    medication_data: MedicationCreate,
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Add a new medication

    - **name**: Medication name
    - **dosage**: Dosage (e.g., "500mg")
    - **frequency**: once_daily, twice_daily, three_times_daily,
      four_times_daily, as_needed or weekly
    """
    medication = await service.add_medication(
        profile.id,
        name=medication_data.name,
        dosage=medication_data.dosage,
        frequency=medication_data.frequency.value
    )
    return MedicationResponse.model_validate(medication)


@router.get("/today", response_model=TodaysMedicationList)
async def get_todays_medications(
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Today's checklist: every medication flagged with whether it was taken today
    """
    medications = await service.get_todays_medications(profile.id)

    return TodaysMedicationList(
        medications=[TodaysMedicationResponse.model_validate(m) for m in medications],
        total=len(medications),
        taken_count=sum(1 for m in medications if m.taken_today)
    )


@router.put("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
    medication_id: str,
    medication_data: MedicationUpdate,
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Update medication name, dosage or frequency
    """
    updates = medication_data.model_dump(exclude_unset=True, exclude_none=True, mode="json")

    if not updates:
        for medication in await service.get_medications(profile.id):
            if medication.id == medication_id:
                return MedicationResponse.model_validate(medication)
        raise NotFoundError(f"Medication {medication_id} not found")

    medication = await service.update_medication(profile.id, medication_id, updates)
    return MedicationResponse.model_validate(medication)


@router.delete("/{medication_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medication(
    medication_id: str,
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Delete a medication the user owns
    """
    await service.delete_medication(profile.id, medication_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{medication_id}/taken",
    response_model=MarkTakenResponse,
    status_code=status.HTTP_201_CREATED
)
async def mark_taken(
    medication_id: str,
    dose_data: DoseTaken,
    allow_duplicate: bool = Query(False, description="Log even if a dose is already recorded today"),
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Mark a dose taken

    The cached list shows the dose immediately; a failed write restores it
    and returns the error.
    """
    result = await service.mark_taken(
        profile.id,
        medication_id,
        taken_at=dose_data.taken_at,
        notes=dose_data.notes,
        photo_url=dose_data.photo_url,
        allow_duplicate_today=allow_duplicate
    )

    return MarkTakenResponse(
        status=result.status.value,
        log=result.log.model_dump(),
        medications=(
            [MedicationWithLogsResponse.model_validate(m) for m in result.medications]
            if result.medications is not None else None
        )
    )
