"""
Google Calendar Service
Handles the one-time OAuth consent flow and per-technician job events
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx
from sqlalchemy.orm import Session

from ..config import (
    GOOGLE_CALENDAR_TIMEZONE,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    GOOGLE_REFRESH_TOKEN,
    SCHEDULER_EMAIL,
)
from ..models import Job, JobTechnician, User

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"

DEFAULT_EVENT_DURATION = timedelta(hours=2)


class GoogleOAuthError(Exception):
    """Token endpoint rejected the request"""


def build_authorization_url() -> str:
    """Consent screen URL requesting offline access so Google returns a refresh token"""
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": GOOGLE_CALENDAR_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str) -> dict:
    """Exchange an authorization code for tokens"""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )

    if response.status_code != 200:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        logger.error(f"❌ Token exchange failed: {response.text}")
        raise GoogleOAuthError(error_data.get("error_description") or "Failed to exchange code")

    return response.json()


async def get_access_token(refresh_token: Optional[str] = None) -> Optional[str]:
    """Mint an access token from the scheduler account's refresh token. None if refresh fails."""
    refresh_token = refresh_token or GOOGLE_REFRESH_TOKEN
    if not refresh_token or not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        logger.warning("⚠️ Google Calendar credentials not configured")
        return None

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Token refresh request failed: {e}")
        return None

    if response.status_code != 200:
        logger.error(f"❌ Token refresh failed: {response.text}")
        return None
    return response.json().get("access_token")


def build_event_description(job: Job) -> str:
    lines = [
        f"Job: {job.title or ''}",
        f"Job Number: {job.job_number}",
        f"Customer: {job.customer.display_name if job.customer else 'N/A'}",
    ]
    if job.internal_notes:
        lines.append("")
        lines.append(f"Internal Notes: {job.internal_notes}")
    lines.append("")
    lines.append(f"Scheduled by: {SCHEDULER_EMAIL}")
    return "\n".join(lines)


def build_event_payload(job: Job, technician: Optional[User] = None, now: Optional[datetime] = None) -> dict:
    """Event body; a technician adds the deterministic iCalUID used for recovery"""
    start = job.scheduled_start or now or datetime.utcnow()
    end = job.scheduled_end or start + DEFAULT_EVENT_DURATION

    payload: dict[str, Any] = {
        "summary": f"{job.job_number}: {job.title or ''}".strip(),
        "description": build_event_description(job),
        "start": {"dateTime": start.isoformat(), "timeZone": GOOGLE_CALENDAR_TIMEZONE},
        "end": {"dateTime": end.isoformat(), "timeZone": GOOGLE_CALENDAR_TIMEZONE},
    }
    if technician is not None:
        domain = SCHEDULER_EMAIL.split("@")[-1]
        payload["iCalUID"] = f"job-{job.id}-tech-{technician.id}@{domain}"
        payload["extendedProperties"] = {
            "private": {"jobId": job.id, "technicianId": technician.id}
        }
    return payload


def _summarize(results: dict[str, dict]) -> dict:
    if results and all(not r["success"] for r in results.values()):
        return {
            "success": False,
            "error": f"Failed to create any calendar events. Technicians may need to share calendars with {SCHEDULER_EMAIL}",
            "details": results,
        }
    if any(not r["success"] for r in results.values()):
        return {"success": True, "error": "Some calendar events failed to create", "details": results}
    return {"success": True, "details": results}


async def create_calendar_events_for_job(
    db: Session, job: Job, technician_ids: list[str], access_token: Optional[str] = None
) -> dict:
    """
    Create one event per technician on the technician's own calendar
    and remember the event ids on the assignment rows
    """
    if not technician_ids:
        return {"success": True, "details": {"message": "No technicians to create events for"}}

    access_token = access_token or await get_access_token()
    if not access_token:
        return {"success": False, "error": "Google Calendar API credentials not configured"}

    technicians = (
        db.query(User)
        .filter(User.id.in_(technician_ids), User.organization_id == job.organization_id)
        .all()
    )

    results: dict[str, dict] = {}
    async with httpx.AsyncClient() as client:
        for tech in technicians:
            if not tech.email:
                results[tech.id] = {"success": False, "error": "No email for technician"}
                continue

            calendar_id = quote(tech.email, safe="")
            try:
                response = await client.post(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                    params={"sendUpdates": "none"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=build_event_payload(job, tech),
                )
            except httpx.HTTPError as e:
                logger.error(f"❌ Error creating event for technician {tech.id}: {e}")
                results[tech.id] = {"success": False, "error": str(e)}
                continue

            if response.status_code not in (200, 201):
                logger.error(f"❌ Failed to create event for {tech.email}: {response.text}")
                results[tech.id] = {
                    "success": False,
                    "error": f"Calendar API error: {response.status_code}. Technician may need to share calendar with {SCHEDULER_EMAIL}",
                }
                continue

            event_id = response.json().get("id")
            db.query(JobTechnician).filter(
                JobTechnician.job_id == job.id, JobTechnician.technician_id == tech.id
            ).update(
                {"google_event_id": event_id, "google_calendar_id": tech.email},
                synchronize_session=False,
            )
            db.commit()
            logger.info(f"📅 Created event {event_id} for {tech.email}")
            results[tech.id] = {"success": True, "eventId": event_id}

    return _summarize(results)


async def update_calendar_events_for_job(
    db: Session, job: Job, technician_ids: list[str], access_token: Optional[str] = None
) -> dict:
    """
    Reconcile calendar events with the job's technician list:
    removed technicians lose their event, kept ones get it patched, new ones get one created
    """
    access_token = access_token or await get_access_token()
    if not access_token:
        return {"success": False, "error": "Google Calendar API credentials not configured"}

    existing = db.query(JobTechnician).filter(JobTechnician.job_id == job.id).all()
    existing_by_tech = {jt.technician_id: jt for jt in existing}

    to_remove = [tid for tid in existing_by_tech if tid not in technician_ids]
    to_update = [tid for tid in existing_by_tech if tid in technician_ids]
    to_add = [tid for tid in technician_ids if tid not in existing_by_tech]
    logger.info(
        f"📅 Calendar update plan for job {job.id}: "
        f"remove={len(to_remove)} update={len(to_update)} add={len(to_add)}"
    )

    async with httpx.AsyncClient() as client:
        for tech_id in to_remove:
            assignment = existing_by_tech[tech_id]
            if not (assignment.google_event_id and assignment.google_calendar_id):
                continue
            calendar_id = quote(assignment.google_calendar_id, safe="")
            try:
                await client.delete(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{assignment.google_event_id}",
                    params={"sendUpdates": "none"},
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                logger.info(f"🗑️ Deleted event for removed technician {tech_id}")
            except httpx.HTTPError as e:
                logger.error(f"❌ Error deleting event for technician {tech_id}: {e}")

        payload = build_event_payload(job)
        for tech_id in to_update:
            assignment = existing_by_tech[tech_id]
            if not (assignment.google_event_id and assignment.google_calendar_id):
                continue
            calendar_id = quote(assignment.google_calendar_id, safe="")
            try:
                response = await client.patch(
                    f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{assignment.google_event_id}",
                    params={"sendUpdates": "none"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=payload,
                )
                if response.status_code == 200:
                    logger.info(f"📅 Patched event for technician {tech_id}")
                else:
                    logger.error(f"❌ Failed to update event for technician {tech_id}: {response.text}")
            except httpx.HTTPError as e:
                logger.error(f"❌ Error updating event for technician {tech_id}: {e}")

    if to_add:
        created = await create_calendar_events_for_job(db, job, to_add, access_token=access_token)
        if not created["success"]:
            return {
                "success": False,
                "error": f"Failed to create events for new technicians: {created.get('error')}",
            }

    return {"success": True}
