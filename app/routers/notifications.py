# app/routers/notifications.py
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query

from ..core.dependencies import get_notification_service, get_realtime_hub
from ..core.security import CurrentUser, get_current_user, require_role
from ..schemas.notification_schemas import NotificationCreate, PushTokenRequest
from ..services.chat.websocket_manager import RealtimeHub
from ..services.notification_service import NotificationService
from ..utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def get_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    notifications = await service.get_notifications(user.id, unread_only, limit, offset)
    return success_response([NotificationService.to_record(n) for n in notifications])


@router.get("/unread-count")
async def get_unread_count(
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    return success_response({"unreadCount": await service.get_unread_count(user.id)})


@router.post("", status_code=201)
async def create_notifications(
    request: NotificationCreate,
    user: CurrentUser = Depends(require_role("admin", "hr")),
    service: NotificationService = Depends(get_notification_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    """Send one notification to each listed user"""
    created = await service.create_bulk_notifications(
        request.user_ids,
        request.notification_type,
        request.title,
        request.message,
        related_id=request.related_id,
        action_url=request.action_url,
        priority=request.priority,
    )
    records = [NotificationService.to_record(n) for n in created]
    for record in records:
        await hub.publish_change("notifications", "INSERT", record, record["userId"])
    logger.info(f"{user.id} sent {len(records)} {request.notification_type.value} notifications")
    return success_response(records, "Notifications created")


@router.patch("/read-all")
async def mark_all_as_read(
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    updated = await service.mark_all_as_read(user.id)
    if updated:
        await hub.publish_change("notifications", "UPDATE", {"userId": user.id, "isRead": True}, user.id)
    return success_response({"updated": updated}, "All notifications marked as read")


@router.post("/push-token")
async def register_push_token(
    request: PushTokenRequest,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    token = await service.save_push_token(user.id, request.token, request.platform)
    return success_response(
        {"userId": token.user_id, "platform": token.platform},
        "Push token registered"
    )


@router.patch("/{notification_id}/read")
async def mark_as_read(
    notification_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    notification = await service.mark_as_read(notification_id, user.id)
    record = NotificationService.to_record(notification)
    await hub.publish_change("notifications", "UPDATE", record, user.id)
    return success_response(record, "Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    notification = await service.delete_notification(notification_id, user.id)
    await hub.publish_change("notifications", "DELETE", {"id": str(notification.id), "userId": user.id}, user.id)
    return success_response(message="Notification deleted")
