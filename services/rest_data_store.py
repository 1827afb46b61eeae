"""
REST Data Store
Medication data store for a hosted PostgREST-style backend
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import httpx

from config import settings
from schemas import DoseLog, Medication, MedicationWithLogs, Profile
from services.data_store import (
    MedicationDataStore,
    validate_medication_fields,
    validate_profile_fields,
    with_retry,
)
from services.errors import (
    AuthError,
    BackendError,
    ConflictError,
    DataStoreError,
    NetworkError,
    NotFoundError,
    NotFoundOrAccessDenied,
    ReferentialError,
    ValidationError,
)


logger = logging.getLogger(__name__)

SINGLE_OBJECT = "application/vnd.pgrst.object+json"
RETURN_REPRESENTATION = "return=representation"

# Postgres / PostgREST error codes
NOT_FOUND_CODES = {"PGRST301", "PGRST116"}
VALIDATION_CODES = {"23502", "23514", "22P02"}
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INSUFFICIENT_PRIVILEGE = "42501"


def error_from_response(response: httpx.Response) -> DataStoreError:
    """Translate a failed backend response into the typed error taxonomy"""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    code = body.get("code")
    message = body.get("message") or body.get("msg") or response.text or None

    if response.status_code == 401 or "jwt" in (message or "").lower():
        return AuthError(code=code)
    if code in NOT_FOUND_CODES or response.status_code == 404:
        return NotFoundError(code=code)
    if code == UNIQUE_VIOLATION:
        return ConflictError(code=code)
    if code == FOREIGN_KEY_VIOLATION:
        return ReferentialError(code=code)
    if code == INSUFFICIENT_PRIVILEGE or response.status_code == 403:
        return NotFoundOrAccessDenied(code=code)
    if code in VALIDATION_CODES:
        return ValidationError(message, code=code)
    if response.status_code >= 500:
        return BackendError(message, code=code, retryable=True)
    return BackendError(message, code=code)


class RestDataStore(MedicationDataStore):
    """
    Talks to the hosted backend's REST interface with the service key.

    Every query is filtered by user_id explicitly; ownership is never left to
    row-level policies alone.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.BACKEND_URL or "").rstrip("/")
        self.api_key = api_key or settings.BACKEND_API_KEY
        self.timeout = timeout or settings.BACKEND_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "apikey": self.api_key or "",
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        single: bool = False,
        returning: bool = False
    ) -> Any:
        headers = {}
        if single:
            headers["Accept"] = SINGLE_OBJECT
        if returning:
            headers["Prefer"] = RETURN_REPRESENTATION

        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TransportError as e:
            logger.error(f"Backend request {method} {path} failed: {e}")
            raise NetworkError(str(e)) from e

        if response.is_error:
            error = error_from_response(response)
            logger.warning(f"Backend {method} {path} -> {response.status_code} ({type(error).__name__})")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list_medications(self, user_id: str) -> List[MedicationWithLogs]:
        async def _fetch():
            return await self._request(
                "GET",
                "/medications",
                params={
                    "select": "*,medication_logs(*)",
                    "user_id": f"eq.{user_id}",
                    "order": "created_at.desc",
                },
            )

        rows = await with_retry(_fetch)
        return [MedicationWithLogs.model_validate(row) for row in rows or []]

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
        row = await self._request(
            "POST",
            "/medications",
            json={**fields, "user_id": user_id},
            single=True,
            returning=True,
        )
        logger.info(f"Added medication {fields['name']} for user {user_id}")
        return Medication.model_validate(row)

    async def update_medication(
        self,
        medication_id: str,
        user_id: str,
        fields: Dict[str, Any]
    ) -> Medication:
        updates = validate_medication_fields(fields, partial=True)
        updates["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            row = await self._request(
                "PATCH",
                "/medications",
                params={"id": f"eq.{medication_id}", "user_id": f"eq.{user_id}"},
                json=updates,
                single=True,
                returning=True,
            )
        except NotFoundError:
            raise NotFoundError(f"Medication {medication_id} not found")
        return Medication.model_validate(row)

    async def delete_medication(self, medication_id: str, user_id: str) -> None:
        rows = await self._request(
            "DELETE",
            "/medications",
            params={"id": f"eq.{medication_id}", "user_id": f"eq.{user_id}"},
            returning=True,
        )
        if not rows:
            raise NotFoundError(f"Medication {medication_id} not found")
        logger.info(f"Deleted medication {medication_id} for user {user_id}")

    async def insert_dose_log(
        self,
        user_id: str,
        medication_id: str,
        taken_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        photo_url: Optional[str] = None
    ) -> DoseLog:
        owned = await self._request(
            "GET",
            "/medications",
            params={"select": "id", "id": f"eq.{medication_id}", "user_id": f"eq.{user_id}"},
        )
        if not owned:
            raise NotFoundOrAccessDenied()

        payload: Dict[str, Any] = {"medication_id": medication_id, "user_id": user_id}
        if taken_at is not None:
            if taken_at.tzinfo is None:
                taken_at = taken_at.replace(tzinfo=timezone.utc)
            payload["taken_at"] = taken_at.isoformat()
        if notes is not None:
            payload["notes"] = notes
        if photo_url is not None:
            payload["photo_url"] = photo_url

        try:
            row = await self._request(
                "POST", "/medication_logs", json=payload, single=True, returning=True
            )
        except ReferentialError:
            # Medication vanished between the ownership check and the insert
            raise NotFoundOrAccessDenied()

        logger.info(f"Logged dose of medication {medication_id} for user {user_id}")
        return DoseLog.model_validate(row)

    async def get_profile(self, user_id: str) -> Profile:
        async def _fetch():
            return await self._request(
                "GET", "/profiles", params={"id": f"eq.{user_id}"}, single=True
            )

        return Profile.model_validate(await with_retry(_fetch))

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        payload = {
            key: getattr(value, "value", value)
            for key, value in validate_profile_fields(fields).items()
        }
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        row = await self._request(
            "PATCH",
            "/profiles",
            params={"id": f"eq.{user_id}"},
            json=payload,
            single=True,
            returning=True,
        )
        return Profile.model_validate(row)
