"""Property and geography models."""

from typing import Optional
from pydantic import BaseModel, Field


class Area(BaseModel):
    """Area inside a city."""
    area_id: str = Field(..., description="Area ID (text)")
    city_id: str = Field(..., description="City ID (text FK)")
    name: Optional[str] = Field(None, description="Area name")


class Property(BaseModel):
    """Listed property that customers book viewings for."""
    property_id: str = Field(..., description="Property ID (text)")
    title: Optional[str] = Field(None, description="Listing title")
    city_id: Optional[str] = Field(None, description="City ID (text FK)")
    area_id: Optional[str] = Field(None, description="Area ID (text FK)")
    address_string: Optional[str] = Field(None, description="Property address")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None
