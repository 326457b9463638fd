"""Tests for the read-only HTTP API."""

import pytest
from fastapi.testclient import TestClient

from vault_workshop.attendees.desired_state import write_desired_state
from vault_workshop.main import create_app


@pytest.fixture
def api(settings, fake_vault):
    app = create_app(settings, vault_factory=lambda s: fake_vault)
    with TestClient(app) as client:
        yield client


class TestHealth:
    def test_health(self, api, settings) -> None:
        response = api.get(f"{settings.api_prefix}/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "vault-workshop"}


class TestStatus:
    def test_status_lists_live_namespaces(self, api, settings, state) -> None:
        write_desired_state(state, settings.paths.desired_state)

        body = api.get(f"{settings.api_prefix}/status").json()

        assert sorted(body["live"]) == sorted(body["desired"])
        assert body["missing"] == []
        assert body["freshly_nuked"] is False


class TestAttendees:
    def test_attendees_never_include_passwords(self, api, settings, state) -> None:
        write_desired_state(state, settings.paths.desired_state)

        response = api.get(f"{settings.api_prefix}/attendees")

        assert response.status_code == 200
        attendees = response.json()["attendees"]
        assert [item["namespace"] for item in attendees][:3] == [
            "admin/team_raymon-e",
            "admin/team_ada",
            "admin/team_raymon-b",
        ]
        assert all("password" not in item for item in attendees)
        assert "VaultWorkshop-" not in response.text

    def test_missing_desired_state_is_404(self, api, settings) -> None:
        response = api.get(f"{settings.api_prefix}/attendees")
        assert response.status_code == 404
