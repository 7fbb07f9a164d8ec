"""Appointment models - property viewings and their status audit trail."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from src.utils.time_windows import combine_date_time


class AppointmentStatus(str, Enum):
    """Viewing lifecycle states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    # Legacy synonym of CONFIRMED kept for rows written by older clients
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

# Statuses that hold a customer's slot for a property
OPEN_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.ACCEPTED)

# Statuses that occupy an agent's calendar
BOOKED_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.ACCEPTED)

# Administrative transitions. PENDING -> CONFIRMED only happens through a
# winning acceptance or an admin assignment, both of which set the agent.
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED}),
    AppointmentStatus.ACCEPTED: frozenset({AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED}),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def can_transition(old: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(AppointmentStatus(old), frozenset())


class Appointment(BaseModel):
    """Scheduled property viewing."""
    appointment_id: str = Field(..., description="Appointment ID (text)")
    property_id: str = Field(..., description="Property ID (text FK)")
    customer_id: str = Field(..., description="Customer user ID (text FK)")
    agent_id: Optional[str] = Field(None, description="Assigned agent ID, unset until a request wins")
    appointment_date: date = Field(..., description="Viewing date")
    start_time: time = Field(..., description="Start time (wall clock)")
    end_time: time = Field(..., description="End time (wall clock), strictly after start_time")
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING, description="Lifecycle status")
    customer_notes: Optional[str] = Field(None, description="Notes from the customer")
    agent_notes: Optional[str] = Field(None, description="Notes from the agent")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def model_post_init(self, __context) -> None:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")

    @property
    def starts_at(self) -> datetime:
        return combine_date_time(self.appointment_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return combine_date_time(self.appointment_date, self.end_time)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class AppointmentStatusHistory(BaseModel):
    """Append-only audit row for one status change."""
    history_id: str = Field(..., description="History row ID (text)")
    appointment_id: str = Field(..., description="Appointment ID (text FK)")
    old_status: Optional[AppointmentStatus] = Field(None, description="Previous status, null on creation")
    new_status: AppointmentStatus = Field(..., description="Status after the change")
    changed_by: Optional[str] = Field(None, description="Acting user ID")
    notes: Optional[str] = None
    created_at: Optional[str] = None
