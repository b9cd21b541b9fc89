"""
Automated status transitions for jobs
Handles active → overdue once a job's scheduled start is more than two days in the past
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Job
from .notification_service import create_notifications, get_manager_user_ids
from .scan_result import FAILED, SKIPPED, UPDATED, ScanResult

logger = logging.getLogger(__name__)

OVERDUE_AFTER = timedelta(days=2)
# Statuses a job can no longer leave through the overdue scan
CLOSED_JOB_STATUSES = ("completed", "cancelled", "overdue")


def _mark_overdue(db: Session, job_id: str) -> bool:
    """
    Conditionally move one job to overdue and commit.
    Returns False when another writer closed the job first.
    """
    rows = (
        db.query(Job)
        .filter(Job.id == job_id, Job.status.notin_(CLOSED_JOB_STATUSES))
        .update({"status": "overdue"}, synchronize_session=False)
    )
    db.commit()
    return rows == 1


def check_overdue_jobs(
    db: Session,
    now: Optional[datetime] = None,
    organization_id: Optional[str] = None,
) -> ScanResult:
    """
    Flag jobs whose scheduled start is more than two days past as overdue
    and notify the managers of each job's organization.
    Should be run as a scheduled job (e.g., daily cron)

    A failure on one job is rolled back and recorded; the scan carries on
    with the remaining jobs.

    Returns:
        ScanResult: checked/updated counts and per-job outcomes
    """
    now = now or datetime.utcnow()
    threshold = now - OVERDUE_AFTER

    query = db.query(Job.id, Job.organization_id, Job.title, Job.job_number).filter(
        Job.scheduled_start.isnot(None),
        Job.scheduled_start < threshold,
        Job.status.notin_(CLOSED_JOB_STATUSES),
    )
    if organization_id:
        query = query.filter(Job.organization_id == organization_id)

    candidates = query.order_by(Job.scheduled_start.asc()).all()
    result = ScanResult(checked=len(candidates))

    for job_id, org_id, title, job_number in candidates:
        try:
            changed = _mark_overdue(db, job_id)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to mark job {job_id} overdue: {e}")
            result.record(job_id, FAILED, str(e))
            continue

        if not changed:
            result.record(job_id, SKIPPED)
            continue

        result.record(job_id, UPDATED)
        logger.info(f"✅ Job {job_id} transitioned → overdue")

        create_notifications(
            db,
            organization_id=org_id,
            recipient_user_ids=get_manager_user_ids(db, org_id),
            notification_type="job_overdue",
            message=f'Job "{title or job_number}" is now overdue',
            related_entity_type="job",
            related_entity_id=job_id,
        )

    if result.checked:
        logger.info(
            f"📊 Overdue scan: checked={result.checked} updated={result.updated} "
            f"failed={len(result.failed)}"
        )
    else:
        logger.debug("ℹ️ No overdue jobs found")
    return result
