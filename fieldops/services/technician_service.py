"""Technician assignment responses and technician account management"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..models import Job, JobTechnician, User
from ..utils.sanitization import sanitize_string
from .notification_service import create_notifications, get_manager_user_ids

logger = logging.getLogger(__name__)


class TechnicianService:
    """Service layer for technician workflows"""

    def __init__(self, db: Session):
        self.db = db

    def _get_assignment(self, job_technician_id: str, user) -> JobTechnician:
        """Assignment in the caller's organization, answered by the assignee or a manager"""
        assignment = (
            self.db.query(JobTechnician)
            .join(Job, Job.id == JobTechnician.job_id)
            .filter(
                JobTechnician.id == job_technician_id,
                Job.organization_id == user.organization_id,
            )
            .first()
        )
        if not assignment:
            raise HTTPException(status_code=404, detail="Job assignment not found")
        if assignment.technician_id != user.id and not user.is_manager:
            raise HTTPException(status_code=403, detail="Forbidden")
        return assignment

    def accept_job(self, job_technician_id: str, job_id: str, user) -> dict:
        """
        Accept a job assignment.
        Assignment and parent job are updated in one transaction so a failure
        leaves neither row changed.
        """
        assignment = self._get_assignment(job_technician_id, user)
        if assignment.job_id != job_id:
            raise HTTPException(status_code=400, detail="Assignment does not belong to this job")

        job = assignment.job
        try:
            assignment.status = "accepted"
            assignment.responded_at = datetime.utcnow()
            job.status = "accepted"
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error accepting job {job_id} for assignment {job_technician_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to accept job") from e

        logger.info(f"✅ Technician {assignment.technician_id} accepted job {job_id}")
        self._notify_managers(job, assignment, "job_accepted", "accepted")
        return {"success": True}

    def decline_job(self, job_technician_id: str, user) -> dict:
        """Decline a job assignment. The job's own status is left unchanged."""
        assignment = self._get_assignment(job_technician_id, user)
        try:
            assignment.status = "declined"
            assignment.responded_at = datetime.utcnow()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error declining assignment {job_technician_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to decline job") from e

        logger.info(f"ℹ️ Technician {assignment.technician_id} declined job {assignment.job_id}")
        self._notify_managers(assignment.job, assignment, "job_declined", "declined")
        return {"success": True}

    def _notify_managers(self, job: Job, assignment: JobTechnician, notification_type: str, verb: str):
        technician = assignment.technician
        who = (technician.full_name or technician.email) if technician else "A technician"
        create_notifications(
            self.db,
            organization_id=job.organization_id,
            recipient_user_ids=get_manager_user_ids(self.db, job.organization_id),
            notification_type=notification_type,
            message=f'{who} {verb} job "{job.label}"',
            related_entity_type="job",
            related_entity_id=job.id,
        )

    # ------------------------------------------------------------------
    # Technician accounts
    # ------------------------------------------------------------------

    def create_technician(
        self,
        full_name: str,
        email: str,
        organization_id: str,
        phone: Optional[str] = None,
        specialty: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        if self.db.query(User.id).filter(User.email == email).first():
            raise HTTPException(status_code=400, detail="A user with this email already exists")

        technician = User(
            full_name=sanitize_string(full_name),
            email=email,
            phone=phone or None,
            role="technician",
            is_active=True if is_active is None else is_active,
            organization_id=organization_id,
            preferences={"specialty": specialty} if specialty else {},
        )
        try:
            self.db.add(technician)
            self.db.commit()
            self.db.refresh(technician)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error creating technician {email}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create technician") from e

        logger.info(f"🆕 Technician created: {email}")
        return technician

    def update_technician(
        self,
        technician_id: str,
        user,
        full_name: str,
        email: str,
        phone: Optional[str] = None,
        specialty: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        technician = (
            self.db.query(User)
            .filter(
                User.id == technician_id,
                User.organization_id == user.organization_id,
                User.role == "technician",
            )
            .first()
        )
        if not technician:
            raise HTTPException(status_code=404, detail="Technician not found")

        taken = (
            self.db.query(User.id)
            .filter(User.email == email, User.id != technician_id)
            .first()
        )
        if taken:
            raise HTTPException(status_code=400, detail="A user with this email already exists")

        technician.full_name = sanitize_string(full_name)
        technician.email = email
        technician.phone = phone or None
        technician.is_active = True if is_active is None else is_active
        technician.preferences = {"specialty": specialty} if specialty else {}
        try:
            self.db.commit()
            self.db.refresh(technician)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error updating technician {technician_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update technician") from e
        return technician
