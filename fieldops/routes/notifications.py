from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..schemas import NotificationResponse, SuccessResponse, UnreadCountResponse
from ..services.notification_service import (
    get_unread_count,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Badge count; a failed lookup reads as zero"""
    return UnreadCountResponse(count=get_unread_count(db, current_user))


@router.get("", response_model=list[NotificationResponse])
async def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_notifications(db, current_user, limit=limit)


@router.post("/read-all")
async def read_all(
    current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)
):
    updated = mark_all_notifications_read(db, current_user)
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read", response_model=SuccessResponse)
async def read_one(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not mark_notification_read(db, current_user, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return SuccessResponse()
