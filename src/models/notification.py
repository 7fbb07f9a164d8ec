"""Notification payloads - tagged union keyed by notification type."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter


class NotificationType(str, Enum):
    """Notification kinds understood by the gateway."""
    SYSTEM = "system"
    APPOINTMENT_REMINDER = "appointment_reminder"


class NotificationChannel(str, Enum):
    """Delivery channels."""
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class _NotificationBase(BaseModel):
    user_id: str = Field(..., description="Recipient user ID")
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    channel: NotificationChannel = Field(default=NotificationChannel.IN_APP)


class SystemNotification(_NotificationBase):
    """Account and workflow notices (vetting decisions, new applications, assignments)."""
    type: Literal[NotificationType.SYSTEM] = NotificationType.SYSTEM
    related_id: Optional[str] = Field(None, description="Related entity ID, if any")


class AppointmentNotification(_NotificationBase):
    """Notices about one specific viewing."""
    type: Literal[NotificationType.APPOINTMENT_REMINDER] = NotificationType.APPOINTMENT_REMINDER
    related_id: str = Field(..., description="Appointment ID")


Notification = Annotated[
    Union[SystemNotification, AppointmentNotification],
    Field(discriminator="type"),
]

notification_adapter: TypeAdapter[Notification] = TypeAdapter(Notification)


def build_notification(
    user_id: str,
    kind: NotificationType,
    title: str,
    message: str,
    related_id: Optional[str] = None,
    channel: NotificationChannel = NotificationChannel.IN_APP,
) -> Union[SystemNotification, AppointmentNotification]:
    """Validate raw notification fields into the matching variant."""
    return notification_adapter.validate_python({
        "type": NotificationType(kind),
        "user_id": user_id,
        "title": title,
        "message": message,
        "related_id": related_id,
        "channel": NotificationChannel(channel),
    })
