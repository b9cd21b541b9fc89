"""Tests for the Google OAuth handshake and calendar event payloads."""

import asyncio
import json
from datetime import datetime
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import auth_headers
from fieldops.models import JobTechnician
from fieldops.routes import google_calendar as google_routes
from fieldops.services import google_calendar_service
from fieldops.services.google_calendar_service import (
    GoogleOAuthError,
    build_authorization_url,
    build_event_payload,
    create_calendar_events_for_job,
    update_calendar_events_for_job,
)

PUBLIC = "https://ops.example.com"


@pytest.fixture
def google_config(monkeypatch):
    monkeypatch.setattr(google_calendar_service, "GOOGLE_CLIENT_ID", "client-123")
    monkeypatch.setattr(google_calendar_service, "GOOGLE_REDIRECT_URI", f"{PUBLIC}/google/auth/callback")
    monkeypatch.setattr(google_routes, "GOOGLE_CLIENT_ID", "client-123")
    monkeypatch.setattr(google_routes, "PUBLIC_URL", PUBLIC)


class TestAuthorizationUrl:
    def test_requests_offline_calendar_access(self, google_config) -> None:
        url = urlparse(build_authorization_url())
        params = parse_qs(url.query)

        assert url.netloc == "accounts.google.com"
        assert params["client_id"] == ["client-123"]
        assert params["redirect_uri"] == [f"{PUBLIC}/google/auth/callback"]
        assert params["scope"] == ["https://www.googleapis.com/auth/calendar.events"]
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["response_type"] == ["code"]


class TestOAuthRoutes:
    def test_initiate_redirects_to_google(self, client, google_config) -> None:
        response = client.get("/google/auth/initiate", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")

    def test_initiate_without_client_id_is_500(self, client, monkeypatch) -> None:
        monkeypatch.setattr(google_routes, "GOOGLE_CLIENT_ID", None)

        response = client.get("/google/auth/initiate", follow_redirects=False)

        assert response.status_code == 500
        assert response.json() == {"error": "GOOGLE_CLIENT_ID not configured"}

    def test_callback_success_hands_over_refresh_token(self, client, google_config, monkeypatch) -> None:
        async def fake_exchange(code):
            assert code == "auth-code"
            return {"access_token": "ya29.x", "refresh_token": "1//refresh"}

        monkeypatch.setattr(google_routes, "exchange_code", fake_exchange)

        response = client.get("/google/auth/callback?code=auth-code", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == f"{PUBLIC}/admin/google-auth/success?refresh_token=1//refresh"

    def test_callback_exchange_error(self, client, google_config, monkeypatch) -> None:
        async def fake_exchange(code):
            raise GoogleOAuthError("Bad Request")

        monkeypatch.setattr(google_routes, "exchange_code", fake_exchange)

        response = client.get("/google/auth/callback?code=stale", follow_redirects=False)

        assert response.headers["location"] == f"{PUBLIC}/admin/google-auth/error?message=Bad%20Request"

    def test_callback_without_refresh_token(self, client, google_config, monkeypatch) -> None:
        async def fake_exchange(code):
            return {"access_token": "ya29.x"}

        monkeypatch.setattr(google_routes, "exchange_code", fake_exchange)

        response = client.get("/google/auth/callback?code=again", follow_redirects=False)

        location = urlparse(response.headers["location"])
        assert location.path == "/admin/google-auth/error"
        assert "No refresh token received" in parse_qs(location.query)["message"][0]

    def test_callback_denied_by_user(self, client, google_config) -> None:
        response = client.get("/google/auth/callback?error=access_denied", follow_redirects=False)

        assert response.headers["location"] == f"{PUBLIC}/admin/google-auth/error?message=access_denied"

    def test_callback_without_code(self, client, google_config) -> None:
        response = client.get("/google/auth/callback", follow_redirects=False)

        assert urlparse(response.headers["location"]).path == "/admin/google-auth/error"


class TestEventPayload:
    def test_technician_event_has_deterministic_uid(self, db_session, tenants, make_job, monkeypatch) -> None:
        monkeypatch.setattr(google_calendar_service, "SCHEDULER_EMAIL", "schedule@acme.test")
        job = make_job(
            tenants.organization.id,
            title="Cooling tower",
            job_number="J-9",
            scheduled_start=datetime(2026, 5, 1, 8, 0),
        )

        payload = build_event_payload(job, tenants.technician)

        assert payload["summary"] == "J-9: Cooling tower"
        assert payload["iCalUID"] == f"job-{job.id}-tech-{tenants.technician.id}@acme.test"
        assert payload["start"]["dateTime"] == "2026-05-01T08:00:00"
        assert payload["end"]["dateTime"] == "2026-05-01T10:00:00"
        assert "Scheduled by: schedule@acme.test" in payload["description"]

    def test_shared_payload_has_no_uid(self, tenants, make_job) -> None:
        job = make_job(tenants.organization.id, scheduled_start=datetime(2026, 5, 1, 8, 0))

        assert "iCalUID" not in build_event_payload(job)


class TestCalendarUpdateRoute:
    def test_missing_credentials_reported(self, client, tenants, make_job, monkeypatch) -> None:
        async def no_token(refresh_token=None):
            return None

        monkeypatch.setattr(google_calendar_service, "get_access_token", no_token)
        job = make_job(tenants.organization.id)

        response = client.post(
            "/calendar/update",
            json={"jobId": job.id, "technicianIds": [tenants.technician.id]},
            headers=auth_headers(tenants.owner),
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "error": "Google Calendar API credentials not configured",
        }

    def test_job_of_other_tenant_is_404(self, client, tenants, make_job) -> None:
        job = make_job(tenants.other_organization.id)

        response = client.post(
            "/calendar/update",
            json={"jobId": job.id, "technicianIds": []},
            headers=auth_headers(tenants.owner),
        )

        assert response.status_code == 404


@pytest.fixture
def calendar_api(monkeypatch):
    """Route the service's AsyncClient to an in-memory Calendar API.

    Returns the list of requests seen and a dict of calendar owner -> status
    code used to fail inserts for particular technicians.
    """
    seen = []
    failing = {}
    counter = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        owner = request.url.path.split("/calendars/")[1].split("/")[0]
        if request.method == "POST":
            if owner in failing:
                return httpx.Response(failing[owner], text="forbidden")
            counter["n"] += 1
            return httpx.Response(200, json={"id": f"evt-{counter['n']}"})
        if request.method == "PATCH":
            return httpx.Response(200, json={})
        return httpx.Response(204)

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        google_calendar_service.httpx, "AsyncClient", lambda *args, **kwargs: real_client(transport=transport)
    )
    return seen, failing


def _calls(seen):
    return [(r.method, r.url.path) for r in seen]


def _event_path(email, event_id=None):
    path = f"/calendar/v3/calendars/{email}/events"
    return f"{path}/{event_id}" if event_id else path


class TestCreateCalendarEvents:
    def test_event_id_is_stored_on_assignment(
        self, db_session, tenants, make_job, assign, calendar_api
    ) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id, scheduled_start=datetime(2026, 5, 1, 8, 0))
        assign(job, tenants.technician)

        result = asyncio.run(
            create_calendar_events_for_job(db_session, job, [tenants.technician.id], access_token="ya29.t")
        )

        assert result == {"success": True, "details": {tenants.technician.id: {"success": True, "eventId": "evt-1"}}}
        assert _calls(seen) == [("POST", _event_path(tenants.technician.email))]
        assert seen[0].headers["authorization"] == "Bearer ya29.t"
        assert seen[0].url.params["sendUpdates"] == "none"
        assert json.loads(seen[0].content)["iCalUID"].startswith(f"job-{job.id}-tech-{tenants.technician.id}@")

        db_session.expire_all()
        assignment = db_session.query(JobTechnician).filter_by(job_id=job.id).one()
        assert assignment.google_event_id == "evt-1"
        assert assignment.google_calendar_id == tenants.technician.email

    def test_partial_failure_still_succeeds(self, db_session, tenants, make_job, assign, calendar_api) -> None:
        _, failing = calendar_api
        failing[tenants.second_technician.email] = 403
        job = make_job(tenants.organization.id)
        assign(job, tenants.technician)
        assign(job, tenants.second_technician)

        result = asyncio.run(
            create_calendar_events_for_job(
                db_session, job, [tenants.technician.id, tenants.second_technician.id], access_token="t"
            )
        )

        assert result["success"] is True
        assert result["error"] == "Some calendar events failed to create"
        assert result["details"][tenants.technician.id]["success"] is True
        assert result["details"][tenants.second_technician.id]["error"].startswith("Calendar API error: 403")

    def test_all_failed_is_reported(self, db_session, tenants, make_job, assign, calendar_api) -> None:
        _, failing = calendar_api
        failing[tenants.technician.email] = 403
        job = make_job(tenants.organization.id)
        assign(job, tenants.technician)

        result = asyncio.run(
            create_calendar_events_for_job(db_session, job, [tenants.technician.id], access_token="t")
        )

        assert result["success"] is False
        assert result["error"].startswith("Failed to create any calendar events")
        db_session.expire_all()
        assert db_session.query(JobTechnician).filter_by(job_id=job.id).one().google_event_id is None

    def test_other_tenant_technicians_are_ignored(self, db_session, tenants, make_job, calendar_api) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id)

        result = asyncio.run(
            create_calendar_events_for_job(db_session, job, [tenants.other_manager.id], access_token="t")
        )

        assert result == {"success": True, "details": {}}
        assert seen == []

    def test_no_technicians_makes_no_calls(self, db_session, tenants, make_job, calendar_api) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id)

        result = asyncio.run(create_calendar_events_for_job(db_session, job, [], access_token="t"))

        assert result["details"] == {"message": "No technicians to create events for"}
        assert seen == []


class TestUpdateCalendarEvents:
    def test_removed_deleted_and_kept_patched(self, db_session, tenants, make_job, assign, calendar_api) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id, title="Rooftop unit")
        assign(job, tenants.technician, google_event_id="evt-a", google_calendar_id=tenants.technician.email)
        assign(
            job,
            tenants.second_technician,
            google_event_id="evt-b",
            google_calendar_id=tenants.second_technician.email,
        )

        result = asyncio.run(
            update_calendar_events_for_job(db_session, job, [tenants.technician.id], access_token="t")
        )

        assert result == {"success": True}
        assert sorted(_calls(seen)) == sorted(
            [
                ("DELETE", _event_path(tenants.second_technician.email, "evt-b")),
                ("PATCH", _event_path(tenants.technician.email, "evt-a")),
            ]
        )
        patch = next(r for r in seen if r.method == "PATCH")
        assert "iCalUID" not in json.loads(patch.content)
        assert json.loads(patch.content)["summary"].endswith("Rooftop unit")

    def test_new_technician_gets_an_event(self, db_session, tenants, make_job, assign, calendar_api) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id)
        assign(job, tenants.technician, google_event_id="evt-a", google_calendar_id=tenants.technician.email)

        result = asyncio.run(
            update_calendar_events_for_job(
                db_session, job, [tenants.technician.id, tenants.second_technician.id], access_token="t"
            )
        )

        assert result == {"success": True}
        assert _calls(seen) == [
            ("PATCH", _event_path(tenants.technician.email, "evt-a")),
            ("POST", _event_path(tenants.second_technician.email)),
        ]

    def test_assignments_without_events_are_skipped(
        self, db_session, tenants, make_job, assign, calendar_api
    ) -> None:
        seen, _ = calendar_api
        job = make_job(tenants.organization.id)
        assign(job, tenants.technician)
        assign(job, tenants.second_technician)

        result = asyncio.run(
            update_calendar_events_for_job(db_session, job, [tenants.technician.id], access_token="t")
        )

        assert result == {"success": True}
        assert seen == []

    def test_failed_insert_for_new_technician(self, db_session, tenants, make_job, calendar_api) -> None:
        _, failing = calendar_api
        failing[tenants.second_technician.email] = 404
        job = make_job(tenants.organization.id)

        result = asyncio.run(
            update_calendar_events_for_job(db_session, job, [tenants.second_technician.id], access_token="t")
        )

        assert result["success"] is False
        assert result["error"].startswith("Failed to create events for new technicians: Failed to create any")
