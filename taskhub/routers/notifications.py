from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import get_current_user, CurrentUser
from ..core.database import get_db
from ..schemas.notification import (
    NotificationResponse, NotificationList, UnreadCount, MarkAllResult
)
from ..services import notifications as notification_service

router = APIRouter()


@router.get("", response_model=NotificationList)
async def get_notifications(
    include_archived: bool = Query(False, description="Include archived notifications"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Own notifications, newest first"""
    items = notification_service.get_notifications_for_user(
        db, current_user.user_id, include_archived=include_archived
    )
    return NotificationList(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        total=len(items)
    )


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return UnreadCount(count=notification_service.get_unread_count(db, current_user.user_id))


@router.patch("/read-all", response_model=MarkAllResult)
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    updated = notification_service.mark_all_as_read(db, current_user.user_id)
    return MarkAllResult(updated=updated)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return notification_service.mark_notification_as_read(db, current_user.user_id, notification_id)


@router.patch("/{notification_id}/archive", response_model=NotificationResponse)
async def archive(
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return notification_service.archive_notification(db, current_user.user_id, notification_id)
