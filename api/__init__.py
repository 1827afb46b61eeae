"""
API Module
FastAPI routers for the MedTrack application
"""

from api.medications import router as medications_router
from api.adherence import router as adherence_router
from api.profiles import router as profiles_router

from api.deps import (
    get_data_store,
    get_identity,
    get_medication_service,
    get_current_user,
    get_current_profile,
)


__all__ = [
    # Routers
    "medications_router",
    "adherence_router",
    "profiles_router",
    # Dependencies
    "get_data_store",
    "get_identity",
    "get_medication_service",
    "get_current_user",
    "get_current_profile",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(medications_router, prefix=prefix)
    app.include_router(adherence_router, prefix=prefix)
    app.include_router(profiles_router, prefix=prefix)
