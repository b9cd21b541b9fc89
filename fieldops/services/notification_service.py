"""
In-app notification service
Creates notification rows for users and resolves who should receive them
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import MANAGER_ROLES, Job, JobTechnician, Notification, User

logger = logging.getLogger(__name__)


def create_notifications(
    db: Session,
    organization_id: str,
    recipient_user_ids: list[str],
    notification_type: str,
    message: str,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> int:
    """
    Create one notification per recipient

    Never raises: callers fire and forget. A failed insert is logged and
    rolled back so the caller's session stays usable.

    Returns:
        Number of notification rows written
    """
    if not recipient_user_ids:
        logger.debug(f"ℹ️ No recipients for {notification_type}, skipping notification creation")
        return 0

    try:
        for recipient_id in recipient_user_ids:
            db.add(
                Notification(
                    organization_id=organization_id,
                    recipient_user_id=recipient_id,
                    type=notification_type,
                    message=message,
                    related_entity_type=related_entity_type,
                    related_entity_id=related_entity_id,
                    is_read=False,
                )
            )
        db.commit()
        logger.info(f"🔔 Created {len(recipient_user_ids)} {notification_type} notification(s)")
        return len(recipient_user_ids)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error creating {notification_type} notifications: {e}")
        return 0


def create_notification(
    db: Session,
    recipient_id: str,
    notification_type: str,
    message: str,
    related_job_id: Optional[str] = None,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> int:
    """Create a notification for a single recipient, resolving their organization"""
    recipient = db.query(User).filter(User.id == recipient_id).first()
    if not recipient:
        logger.error(f"❌ Recipient user not found: {recipient_id}")
        return 0

    return create_notifications(
        db,
        organization_id=recipient.organization_id,
        recipient_user_ids=[recipient_id],
        notification_type=notification_type,
        message=message,
        related_entity_type=related_entity_type or ("job" if related_job_id else None),
        related_entity_id=related_entity_id or related_job_id,
    )


def get_manager_user_ids(db: Session, organization_id: str) -> list[str]:
    """Get all manager-role user IDs in an organization"""
    try:
        rows = (
            db.query(User.id)
            .filter(User.organization_id == organization_id, User.role.in_(MANAGER_ROLES))
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"❌ Error fetching managers for organization {organization_id}: {e}")
        return []
    return [row.id for row in rows]


def get_job_label(db: Session, job_id: str) -> str:
    """Job title, else job number, else the ID itself"""
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        return job_id
    return job.label


def get_job_technician_ids(db: Session, job_id: str) -> list[str]:
    try:
        rows = db.query(JobTechnician.technician_id).filter(JobTechnician.job_id == job_id).all()
    except SQLAlchemyError as e:
        logger.error(f"❌ Error fetching technicians for job {job_id}: {e}")
        return []
    return [row.technician_id for row in rows]


def get_unread_count(db: Session, user) -> int:
    """Count of unread notifications for a user in their organization (0 on failure)"""
    try:
        return (
            db.query(func.count(Notification.id))
            .filter(
                Notification.organization_id == user.organization_id,
                Notification.recipient_user_id == user.id,
                Notification.is_read.is_(False),
            )
            .scalar()
            or 0
        )
    except SQLAlchemyError as e:
        logger.error(f"❌ Error fetching unread notification count: {e}")
        return 0


def list_notifications(db: Session, user, limit: int = 50) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(
            Notification.organization_id == user.organization_id,
            Notification.recipient_user_id == user.id,
        )
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_notification_read(db: Session, user, notification_id: str) -> int:
    """Mark one of the user's notifications as read. Returns rows updated."""
    updated = (
        db.query(Notification)
        .filter(
            Notification.id == notification_id,
            Notification.organization_id == user.organization_id,
            Notification.recipient_user_id == user.id,
        )
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated


def mark_all_notifications_read(db: Session, user) -> int:
    updated = (
        db.query(Notification)
        .filter(
            Notification.organization_id == user.organization_id,
            Notification.recipient_user_id == user.id,
            Notification.is_read.is_(False),
        )
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    logger.info(f"✅ Marked {updated} notification(s) read for user {user.id}")
    return updated
