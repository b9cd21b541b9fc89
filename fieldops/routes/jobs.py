"""
Job maintenance endpoints
Overdue scan (cron) and job deletion
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import CurrentUser, require_manager, verify_cron_request
from ..database import get_db
from ..services.job_service import JobService
from ..services.status_automation import check_overdue_jobs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db)


@router.get("/check-overdue", dependencies=[Depends(verify_cron_request)])
async def check_overdue(db: Session = Depends(get_db)):
    """
    Flag jobs more than two days past their scheduled start as overdue
    (Intended to be pinged daily by a cron job)
    """
    try:
        result = check_overdue_jobs(db)
    except Exception as e:
        logger.error(f"❌ Error in overdue job check: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    return {"success": True, **result.to_response()}


@router.delete("/{job_id}/delete")
async def delete_job(
    job_id: str,
    current_user: CurrentUser = Depends(require_manager),
    service: JobService = Depends(get_job_service),
):
    """Delete a job and everything attached to it"""
    return service.delete_job(job_id, current_user)
