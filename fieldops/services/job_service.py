"""Job service - Business logic for job operations"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..models import Job, JobAttachment, JobContact, JobEquipment, JobTechnician

logger = logging.getLogger(__name__)

# Child tables removed ahead of the job row itself
JOB_CHILD_MODELS = (JobTechnician, JobEquipment, JobContact, JobAttachment)


class JobService:
    """Service layer for job business logic"""

    def __init__(self, db: Session):
        self.db = db

    def get_job(self, job_id: str, organization_id: str) -> Job:
        job = (
            self.db.query(Job)
            .filter(Job.id == job_id, Job.organization_id == organization_id)
            .first()
        )
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    def delete_job(self, job_id: str, user) -> dict:
        """
        Delete a job together with its technicians, equipment, contacts and attachments.

        Only jobs of the caller's organization are touched. A job id from
        another organization (or an unknown id) deletes nothing and still
        reports success.
        """
        owned = (
            self.db.query(Job.id)
            .filter(Job.id == job_id, Job.organization_id == user.organization_id)
            .first()
        )
        if not owned:
            logger.info(f"ℹ️ Delete of job {job_id} by {user.email} matched no job in their organization")
            return {"success": True}

        try:
            for model in JOB_CHILD_MODELS:
                self.db.query(model).filter(model.job_id == job_id).delete(synchronize_session=False)
            self.db.query(Job).filter(
                Job.id == job_id, Job.organization_id == user.organization_id
            ).delete(synchronize_session=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error deleting job {job_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e) or "Failed to delete job") from e

        logger.info(f"🗑️ Job {job_id} deleted by {user.email}")
        return {"success": True}
