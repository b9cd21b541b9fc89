"""
Google Calendar Integration Routes
One-time OAuth consent for the scheduler account, plus job event syncing
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..auth import CurrentUser, require_manager
from ..config import GOOGLE_CLIENT_ID, PUBLIC_URL
from ..database import get_db
from ..schemas import CalendarUpdateRequest
from ..services.google_calendar_service import (
    GoogleOAuthError,
    build_authorization_url,
    exchange_code,
    update_calendar_events_for_job,
)
from ..services.job_service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["google-calendar"])


def _admin_redirect(request: Request, outcome: str, query: str) -> RedirectResponse:
    base_url = PUBLIC_URL or str(request.base_url).rstrip("/")
    return RedirectResponse(url=f"{base_url}/admin/google-auth/{outcome}?{query}", status_code=307)


@router.get("/google/auth/initiate")
async def initiate_google_oauth():
    """Redirect to Google's consent screen"""
    if not GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=500, detail="GOOGLE_CLIENT_ID not configured")

    logger.info("📅 Google Calendar OAuth initiated")
    return RedirectResponse(url=build_authorization_url(), status_code=307)


@router.get("/google/auth/callback")
async def google_oauth_callback(request: Request, code: str = None, error: str = None):
    """Exchange the code and hand the refresh token to the admin page"""
    if error:
        return _admin_redirect(request, "error", f"message={quote(error)}")
    if not code:
        return _admin_redirect(request, "error", f"message={quote('No authorization code received')}")

    try:
        tokens = await exchange_code(code)
    except GoogleOAuthError as e:
        return _admin_redirect(request, "error", f"message={quote(str(e))}")
    except Exception as e:
        logger.error(f"❌ Google OAuth callback error: {e}")
        return _admin_redirect(request, "error", f"message={quote('Internal server error')}")

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        return _admin_redirect(
            request,
            "error",
            f"message={quote('No refresh token received. Revoke access and try again.')}",
        )

    logger.info("✅ Google Calendar refresh token obtained")
    return _admin_redirect(request, "success", f"refresh_token={quote(refresh_token)}")


@router.post("/calendar/update")
async def update_calendar(
    data: CalendarUpdateRequest,
    current_user: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Sync technician calendar events after a job's assignment changed"""
    job = JobService(db).get_job(data.jobId, current_user.organization_id)
    try:
        return await update_calendar_events_for_job(db, job, data.technicianIds)
    except Exception as e:
        logger.error(f"❌ Error updating calendar events for job {job.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update calendar events") from e
