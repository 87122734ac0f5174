"""Notification endpoints - the caller's inbox."""
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.database import get_database
from app.errors import NotFoundError
from app.models.notification import Notification
from app.models.user import CurrentUser
from app.routers.auth import get_current_user
from app.services.notification_service import NotificationService


router = APIRouter(prefix="/notifications", tags=["notifications"])


async def get_notification_service(db=Depends(get_database)) -> NotificationService:
    """Dependency building the notification service for a request."""
    return NotificationService(db)


@router.get("", response_model=list[Notification])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """List the caller's notifications, newest first."""
    return await service.list_for_user(user.id, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Mark one notification as read."""
    try:
        await service.mark_read(user.id, notification_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
