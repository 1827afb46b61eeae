"""
Tests for REST Data Store
Tests request shapes, error mapping and read retries using httpx.MockTransport
"""

import json
import pytest
import httpx

from services.data_store import with_retry
from services.errors import (
    AuthError,
    BackendError,
    ConflictError,
    NetworkError,
    NotFoundError,
    NotFoundOrAccessDenied,
    ReferentialError,
    ValidationError,
)
from services.rest_data_store import RestDataStore, error_from_response


BASE_URL = "https://backend.test"

MEDICATION_ROW = {
    "id": "med-1",
    "user_id": "user-1",
    "name": "Metformin",
    "dosage": "500mg",
    "frequency": "twice_daily",
    "created_at": "2024-01-01T08:00:00+00:00",
    "updated_at": "2024-01-01T08:00:00+00:00",
}

LOG_ROW = {
    "id": "log-1",
    "medication_id": "med-1",
    "user_id": "user-1",
    "taken_at": "2024-01-30T09:00:00Z",
    "notes": None,
    "photo_url": None,
    "created_at": "2024-01-30T09:00:01Z",
}


def _store(handler) -> RestDataStore:
    return RestDataStore(
        base_url=BASE_URL,
        api_key="service-key",
        transport=httpx.MockTransport(handler),
    )


def _error(status_code: int, code: str = None, message: str = "failed") -> httpx.Response:
    return httpx.Response(status_code, json={"code": code, "message": message})


# =============================================================================
# Error Mapping
# =============================================================================

class TestErrorMapping:
    """Tests for error_from_response"""

    @pytest.mark.unit
    @pytest.mark.parametrize("response,expected", [
        (_error(401, message="JWT expired"), AuthError),
        (_error(400, message="invalid JWT"), AuthError),
        (_error(406, "PGRST116"), NotFoundError),
        (_error(404, "PGRST301"), NotFoundError),
        (_error(409, "23505"), ConflictError),
        (_error(409, "23503"), ReferentialError),
        (_error(403, "42501"), NotFoundOrAccessDenied),
        (_error(400, "23514"), ValidationError),
        (_error(503, None), BackendError),
        (httpx.Response(500, text="<html>oops</html>"), BackendError),
    ])
    def test_maps_codes(self, response, expected):
        assert type(error_from_response(response)) is expected

    @pytest.mark.unit
    def test_user_messages(self):
        assert error_from_response(_error(401)).message == "Session expired. Please log in again."
        assert error_from_response(_error(406, "PGRST116")).message == "Resource not found"
        assert error_from_response(_error(409, "23505")).message == "This record already exists"

    @pytest.mark.unit
    def test_server_errors_are_retryable(self):
        assert error_from_response(_error(503)).retryable is True
        assert error_from_response(_error(400, "XX000")).retryable is False


# =============================================================================
# Retry Policy
# =============================================================================

class TestWithRetry:
    """Tests for with_retry"""

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise NetworkError("reset")
            return "ok"

        assert await with_retry(operation, attempts=3, base_delay=0) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def operation():
            calls.append(1)
            raise BackendError("unavailable", retryable=True)

        with pytest.raises(BackendError):
            await with_retry(operation, attempts=2, base_delay=0)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise AuthError()

        with pytest.raises(AuthError):
            await with_retry(operation, attempts=3, base_delay=0)
        assert len(calls) == 1


# =============================================================================
# Requests
# =============================================================================

class TestRestDataStore:
    """Tests for RestDataStore requests against a mocked backend"""

    @pytest.mark.asyncio
    async def test_list_medications_query(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{**MEDICATION_ROW, "medication_logs": [LOG_ROW]}])

        store = _store(handler)
        medications = await store.list_medications("user-1")
        await store.close()

        request = seen[0]
        assert request.url.path == "/rest/v1/medications"
        assert request.url.params["select"] == "*,medication_logs(*)"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.url.params["order"] == "created_at.desc"
        assert request.headers["apikey"] == "service-key"
        assert medications[0].medication_logs[0].id == "log-1"

    @pytest.mark.asyncio
    async def test_list_retries_server_errors(self):
        responses = [_error(503), _error(502), httpx.Response(200, json=[])]

        store = _store(lambda request: responses.pop(0))

        assert await store.list_medications("user-1") == []
        assert responses == []

    @pytest.mark.asyncio
    async def test_list_does_not_retry_auth(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _error(401, message="JWT expired")

        store = _store(handler)

        with pytest.raises(AuthError):
            await store.list_medications("user-1")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        store = _store(handler)

        with pytest.raises(NetworkError):
            await store.insert_medication("user-1", "Metformin", "500mg", "twice_daily")

    @pytest.mark.asyncio
    async def test_insert_medication_payload(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json=MEDICATION_ROW)

        store = _store(handler)
        medication = await store.insert_medication("user-1", " Metformin ", "500mg", "twice_daily")

        body = json.loads(seen[0].content)
        assert seen[0].method == "POST"
        assert body == {"name": "Metformin", "dosage": "500mg", "frequency": "twice_daily", "user_id": "user-1"}
        assert seen[0].headers["Prefer"] == "return=representation"
        assert medication.id == "med-1"

    @pytest.mark.asyncio
    async def test_insert_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _error(503)

        store = _store(handler)

        with pytest.raises(BackendError):
            await store.insert_medication("user-1", "Metformin", "500mg", "twice_daily")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_delete_nothing_matched(self):
        store = _store(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(NotFoundError):
            await store.delete_medication("med-1", "user-2")

    @pytest.mark.asyncio
    async def test_delete_referenced(self):
        store = _store(lambda request: _error(409, "23503"))

        with pytest.raises(ReferentialError):
            await store.delete_medication("med-1", "user-1")

    @pytest.mark.asyncio
    async def test_insert_dose_log_checks_ownership(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        store = _store(handler)

        with pytest.raises(NotFoundOrAccessDenied):
            await store.insert_dose_log("user-2", "med-1")

        assert len(seen) == 1
        assert seen[0].method == "GET"
        assert seen[0].url.params["user_id"] == "eq.user-2"

    @pytest.mark.asyncio
    async def test_insert_dose_log(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.method == "GET":
                return httpx.Response(200, json=[{"id": "med-1"}])
            return httpx.Response(201, json=LOG_ROW)

        store = _store(handler)
        log = await store.insert_dose_log("user-1", "med-1", notes="evening")

        body = json.loads(seen[1].content)
        assert seen[1].url.path == "/rest/v1/medication_logs"
        assert body == {"medication_id": "med-1", "user_id": "user-1", "notes": "evening"}
        assert log.id == "log-1"

    @pytest.mark.asyncio
    async def test_update_profile_sends_role_value(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "user-1", "email": "a@example.com", "role": "caretaker"})

        store = _store(handler)
        profile = await store.update_profile("user-1", {"role": "caretaker"})

        body = json.loads(seen[0].content)
        assert body["role"] == "caretaker"
        assert "updated_at" in body
        assert profile.role.value == "caretaker"
