"""
Tests for Adherence API
========================

Tests adherence statistics and the role dashboards.
"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi import status
from fastapi.testclient import TestClient


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


# ==================== STATS TESTS ====================

class TestAdherenceStats:
    """Tests for the adherence statistics endpoint"""

    @pytest.mark.api
    def test_no_medications(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/adherence/stats", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_days"] == 0
        assert data["taken_days"] == 0
        assert data["adherence_percentage"] == 0
        assert data["current_streak"] == 0

    @pytest.mark.api
    def test_after_dose_taken(self, client: TestClient, auth_headers, test_medication):
        client.post(f"/api/v1/medications/{test_medication}/taken", json={}, headers=auth_headers)

        response = client.get(f"/api/v1/adherence/stats?as_of={_today()}", headers=auth_headers)

        data = response.json()
        assert data["as_of"] == _today()
        assert data["total_days"] == 30
        assert data["taken_days"] == 1
        assert data["adherence_percentage"] == 3
        assert data["current_streak"] == 1

    @pytest.mark.api
    def test_backdated_dose(self, client: TestClient, auth_headers, test_medication):
        yesterday = datetime.now(timezone.utc) - timedelta(days=1)
        client.post(
            f"/api/v1/medications/{test_medication}/taken",
            json={"taken_at": yesterday.isoformat()},
            headers=auth_headers
        )

        data = client.get(f"/api/v1/adherence/stats?as_of={_today()}", headers=auth_headers).json()

        assert data["taken_days"] == 1
        assert data["current_streak"] == 0

    @pytest.mark.api
    def test_invalid_as_of(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/adherence/stats?as_of=yesterday", headers=auth_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ==================== DASHBOARD TESTS ====================

class TestDashboard:
    """Tests for the role dashboards"""

    @pytest.mark.api
    def test_patient_dashboard(self, client: TestClient, auth_headers, test_medication):
        client.post(f"/api/v1/medications/{test_medication}/taken", json={}, headers=auth_headers)

        response = client.get(f"/api/v1/adherence/dashboard?as_of={_today()}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["role"] == "patient"
        assert data["taken_today_count"] == 1
        assert data["total_medications"] == 1
        assert data["todays_medications"][0]["taken_today"] is True
        assert data["stats"]["current_streak"] == 1

    @pytest.mark.api
    def test_caretaker_dashboard(self, client: TestClient, auth_headers, test_medication):
        client.post(f"/api/v1/medications/{test_medication}/taken", json={}, headers=auth_headers)
        client.put("/api/v1/profile/role", json={"role": "caretaker"}, headers=auth_headers)

        response = client.get(f"/api/v1/adherence/dashboard?as_of={_today()}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["role"] == "caretaker"
        assert data["missed_days"] == 29
        assert data["total_medications"] == 1
        assert data["todays_medications"][0]["taken_today"] is True
        assert data["alerts"] == [
            {"kind": "low_adherence", "title": "Low Adherence", "message": "Adherence below 80%"}
        ]
        assert "taken_today_count" not in data

    @pytest.mark.api
    def test_caretaker_sees_missed_today(self, client: TestClient, auth_headers, test_medication):
        client.put("/api/v1/profile/role", json={"role": "caretaker"}, headers=auth_headers)

        data = client.get(f"/api/v1/adherence/dashboard?as_of={_today()}", headers=auth_headers).json()

        assert data["todays_medications"][0]["taken_today"] is False
        assert [a["title"] for a in data["alerts"]] == ["Low Adherence", "Missed Today"]
