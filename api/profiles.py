"""
Profile API Router
Current user's profile and patient/caretaker view switching
"""

from fastapi import APIRouter, Depends

from api.deps import get_current_profile, get_medication_service
from api.schemas.profile import ProfileResponse, ProfileUpdate, RoleSwitch
from schemas import Profile
from services.medication_service import MedicationService


router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/", response_model=ProfileResponse)
async def get_profile(profile: Profile = Depends(get_current_profile)):
    """Profile of the signed-in user"""
    return ProfileResponse.model_validate(profile)


@router.put("/", response_model=ProfileResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    updated = await service.update_profile(
        profile.id, profile_data.model_dump(exclude_unset=True)
    )
    return ProfileResponse.model_validate(updated)


@router.put("/role", response_model=ProfileResponse)
async def switch_role(
    role_data: RoleSwitch,
    profile: Profile = Depends(get_current_profile),
    service: MedicationService = Depends(get_medication_service)
):
    """
    Switch between the patient and caretaker views

    Send a role to set it explicitly, or an empty body to flip.
    """
    updated = await service.switch_role(profile.id, role_data.role)
    return ProfileResponse.model_validate(updated)
