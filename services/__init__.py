"""
Services Module
Business logic layer for the MedTrack application
"""

from services.adherence_service import (
    compute_adherence,
    todays_medications,
    caretaker_summary,
)
from services.data_store import MedicationDataStore, with_retry
from services.medication_cache import MedicationCache, medications_key
from services.medication_service import MedicationService, MarkTakenResult, MutationState, MutationStatus
from services.sql_data_store import SQLDataStore
from services.rest_data_store import RestDataStore
from services.identity_client import IdentityClient, LocalIdentity


__all__ = [
    # Adherence calculations
    "compute_adherence",
    "todays_medications",
    "caretaker_summary",
    # Data access
    "MedicationDataStore",
    "SQLDataStore",
    "RestDataStore",
    "with_retry",
    # Cache and coordinator
    "MedicationCache",
    "medications_key",
    "MedicationService",
    "MarkTakenResult",
    "MutationState",
    "MutationStatus",
    # Identity
    "IdentityClient",
    "LocalIdentity",
]
