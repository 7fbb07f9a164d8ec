"""Agent model - vetted professional scoped to cities/areas."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class AgentApprovalStatus(str, Enum):
    """Vetting decision states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Agent(BaseModel):
    """Agent profile linked one-to-one with a user account."""
    agent_id: str = Field(..., description="Agent ID (text)")
    user_id: str = Field(..., description="User ID (text FK, unique)")
    status: AgentApprovalStatus = Field(
        default=AgentApprovalStatus.PENDING,
        description="Approval status: pending, approved, rejected"
    )
    city_ids: list[str] = Field(default_factory=list, description="Cities the agent serves")
    area_ids: list[str] = Field(
        default_factory=list,
        description="Areas the agent serves, only when exactly one city is assigned"
    )
    identity_proof_url: Optional[str] = Field(None, description="Identity proof document reference")
    residency_document_url: Optional[str] = Field(None, description="Residency document reference")
    kyc_notes: Optional[str] = Field(None, description="Free-text vetting notes")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        """Areas are only meaningful when scoped to exactly one city."""
        if len(self.city_ids) > 1 and self.area_ids:
            raise ValueError("area_ids must be empty when more than one city is assigned")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def serves(self, area_id: str, city_id: Optional[str]) -> bool:
        """True when the agent covers the area, directly or through a city-wide scope."""
        if self.area_ids:
            return area_id in self.area_ids
        return city_id is not None and city_id in self.city_ids
