"""User account model (identity + marketplace role)."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class UserType(str, Enum):
    """Account roles."""
    ADMIN = "admin"
    AGENT = "agent"
    CUSTOMER = "customer"
    QUALITY = "quality"


class User(BaseModel):
    """Marketplace account."""
    user_id: str = Field(..., description="User ID (text)")
    full_name: Optional[str] = Field(None, description="Full name")
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    user_type: UserType = Field(default=UserType.CUSTOMER, description="Role: admin, agent, customer, quality")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
