from fastapi import APIRouter, HTTPException, Depends, Query
import logging

from ..auth.dependencies import get_current_user
from ..services.notification_service import notification_service

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

logger = logging.getLogger(__name__)


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
):
    try:
        notifications = await notification_service.list_for_user(current_user["uid"], unread_only, limit)
        return {
            "notifications": notifications,
            "unreadCount": sum(1 for n in notifications if not n.isRead),
        }
    except Exception as e:
        logger.error(f"[Notifications] Listing failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to load notifications: {str(e)}")


@router.post("/{notification_id}/read")
async def mark_notification_read(notification_id: str, current_user: dict = Depends(get_current_user)):
    try:
        found = await notification_service.mark_read(current_user["uid"], notification_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}


@router.post("/read-all")
async def mark_all_notifications_read(current_user: dict = Depends(get_current_user)):
    try:
        updated = await notification_service.mark_all_read(current_user["uid"])
        return {"message": f"{updated} notification(s) marked as read", "updated": updated}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
