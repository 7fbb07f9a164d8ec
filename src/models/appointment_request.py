"""Agent appointment request - one invitation per (appointment, agent) pair."""

from enum import Enum
from typing import Generic, Optional, TypeVar
from pydantic import BaseModel, Field

from src.models.appointment import Appointment


class RequestStatus(str, Enum):
    """Per-agent claim states. Both answers are terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AgentAppointmentRequest(BaseModel):
    """Invitation for one agent to take one appointment."""
    request_id: str = Field(..., description="Request ID (text)")
    appointment_id: str = Field(..., description="Appointment ID (text FK)")
    agent_id: str = Field(..., description="Agent ID (text FK)")
    status: RequestStatus = Field(default=RequestStatus.PENDING, description="pending, accepted, rejected")
    responded_at: Optional[str] = Field(None, description="When the request left pending")
    created_at: Optional[str] = None


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a paginated projection."""
    total_records: int = 0
    current_page: int = 1
    per_page: int = 10
    records: list[T] = Field(default_factory=list)


class AgentAppointments(BaseModel):
    """An agent's confirmed viewings and open invitations, paginated independently."""
    confirmed: Page[Appointment]
    pending: Page[AgentAppointmentRequest]
