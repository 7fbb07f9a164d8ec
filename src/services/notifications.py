"""Notification gateway - best-effort in-app notification records.

Delivery is fire-and-forget: a failure here is logged and reported through the
return value, never raised, so a state transition that already committed is
never rolled back because a notice could not be written.
"""

from typing import Optional
from pydantic import ValidationError

from src.models.notification import (
    NotificationChannel,
    NotificationType,
    build_notification,
)
from src.models.user import UserType
from src.services.supabase_client import (
    SupabaseClient,
    generate_id,
    get_users_by_role,
    utc_now_iso,
)
from src.utils.config import WorkflowConfig
from src.utils.logging import (
    get_structured_logger,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)


def _default_channel(channel: Optional[NotificationChannel]) -> NotificationChannel:
    if channel is not None:
        return NotificationChannel(channel)
    return NotificationChannel(WorkflowConfig.NOTIFICATION_CHANNEL)


def _to_row(notification) -> dict:
    row = notification.model_dump(mode="json")
    row.update({
        "notification_id": generate_id(),
        "is_read": False,
        "created_at": utc_now_iso(),
    })
    return row


async def notify(
    user_id: str,
    kind: NotificationType,
    title: str,
    message: str,
    related_id: Optional[str] = None,
    channel: Optional[NotificationChannel] = None,
) -> bool:
    """Record one notification for a user. Returns False when it could not be written."""
    if not WorkflowConfig.NOTIFICATIONS_ENABLED:
        logger.debug("Notifications disabled, skipping", notification_type=str(kind))
        return False
    
    try:
        notification = build_notification(
            user_id, kind, title, message, related_id, _default_channel(channel)
        )
        async with SupabaseClient() as client:
            client.table("notifications").insert(_to_row(notification)).execute()
    except (ValidationError, ValueError) as e:
        logger.warning(
            "Invalid notification payload, not sent",
            user_id=mask_user_id(user_id),
            notification_type=str(kind),
            error=str(e)
        )
        return False
    except Exception as e:
        logger.warning(
            "Failed to write notification (non-fatal)",
            user_id=mask_user_id(user_id),
            notification_type=str(kind),
            related_id=related_id,
            error=str(e)
        )
        return False
    
    logger.info(
        "Notification sent",
        user_id=mask_user_id(user_id),
        notification_type=notification.type.value,
        related_id=related_id,
        title=title,
        message_preview=sanitize_message_text(message, max_length=100)
    )
    return True


async def notify_by_role(
    role: UserType,
    kind: NotificationType,
    title: str,
    message: str,
    related_id: Optional[str] = None,
    channel: Optional[NotificationChannel] = None,
) -> int:
    """
    Notify every current member of a role.
    
    Membership is queried on each call. Returns the number of notifications
    written (0 on any failure).
    """
    if not WorkflowConfig.NOTIFICATIONS_ENABLED:
        return 0
    
    role = UserType(role)
    try:
        members = await get_users_by_role(role.value)
        if not members:
            logger.info("No users with role, nothing to notify", role=role.value)
            return 0
        
        resolved_channel = _default_channel(channel)
        rows = [
            _to_row(build_notification(
                member["user_id"], kind, title, message, related_id, resolved_channel
            ))
            for member in members
        ]
        async with SupabaseClient() as client:
            client.table("notifications").insert(rows).execute()
    except Exception as e:
        logger.warning(
            "Failed to broadcast notification (non-fatal)",
            role=role.value,
            notification_type=str(kind),
            related_id=related_id,
            error=str(e)
        )
        return 0
    
    logger.info(
        "Role notification sent",
        role=role.value,
        recipients=len(rows),
        notification_type=NotificationType(kind).value,
        related_id=related_id,
        title=title
    )
    return len(rows)
