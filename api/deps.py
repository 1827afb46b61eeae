"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from functools import lru_cache
from typing import Optional, Union
from fastapi import Depends, Header

from config import settings
from schemas import AuthUser, Profile
from services.data_store import MedicationDataStore
from services.errors import AuthError
from services.identity_client import IdentityClient, LocalIdentity
from services.medication_service import MedicationService


@lru_cache()
def get_data_store() -> MedicationDataStore:
    """Data store selected by DATA_STORE"""
    if settings.DATA_STORE == "rest":
        from services.rest_data_store import RestDataStore
        return RestDataStore()

    from services.sql_data_store import SQLDataStore
    return SQLDataStore()


@lru_cache()
def get_identity() -> Union[IdentityClient, LocalIdentity]:
    """
    Token resolver.

    The hosted identity provider whenever a backend is configured; the
    token-is-user-id resolver only for local development on the sql store.
    """
    if settings.DATA_STORE == "rest" or settings.BACKEND_URL:
        return IdentityClient()
    if settings.ENV == "production":
        raise RuntimeError("BACKEND_URL must be configured in production")
    return LocalIdentity()


@lru_cache()
def get_medication_service() -> MedicationService:
    """Process-wide service; owns the medication cache"""
    return MedicationService(get_data_store())


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("User not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("User not authenticated")
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    identity: Union[IdentityClient, LocalIdentity] = Depends(get_identity)
) -> AuthUser:
    """
    Resolve the acting user from the Authorization header
    Raises AuthError (401) when missing or rejected
    """
    return await identity.get_user(_bearer_token(authorization))


async def get_current_profile(
    user: AuthUser = Depends(get_current_user),
    service: MedicationService = Depends(get_medication_service)
) -> Profile:
    """Profile of the acting user, created on first sight by the sql store"""
    return await service.data_store.ensure_profile(user)
