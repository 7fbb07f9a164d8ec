"""Tests for the notification tagged union."""

import pytest
from pydantic import ValidationError

from src.models.notification import (
    AppointmentNotification,
    NotificationChannel,
    NotificationType,
    SystemNotification,
    build_notification,
    notification_adapter,
)


@pytest.mark.unit
def test_build_system_notification():
    notification = build_notification("u1", NotificationType.SYSTEM, "Hello", "Body")
    
    assert isinstance(notification, SystemNotification)
    assert notification.related_id is None
    assert notification.channel == NotificationChannel.IN_APP


@pytest.mark.unit
def test_build_appointment_notification():
    notification = build_notification(
        "u1", "appointment_reminder", "Soon", "Viewing tomorrow", related_id="ap1", channel="email"
    )
    
    assert isinstance(notification, AppointmentNotification)
    assert notification.related_id == "ap1"
    assert notification.channel == NotificationChannel.EMAIL


@pytest.mark.unit
def test_appointment_notification_requires_related_id():
    with pytest.raises(ValidationError):
        build_notification("u1", NotificationType.APPOINTMENT_REMINDER, "Soon", "Viewing tomorrow")


@pytest.mark.unit
def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        build_notification("u1", "carrier_pigeon", "Hi", "There")


@pytest.mark.unit
def test_round_trip_through_adapter():
    notification = build_notification("u1", NotificationType.SYSTEM, "Hello", "Body", related_id="x")
    dumped = notification.model_dump(mode="json")
    
    assert dumped["type"] == "system"
    assert isinstance(notification_adapter.validate_python(dumped), SystemNotification)
