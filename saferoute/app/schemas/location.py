"""
Location sample schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class LocationTrackRequest(BaseModel):
    """
    Schema for submitting a location sample.

    ``id`` is the client's sample id; resubmitting the same id is a no-op.
    Without ``trip_id`` the sample goes to the caller's active trip.
    """
    id: Optional[str] = Field(None, max_length=128)
    trip_id: Optional[str] = Field(None, max_length=64)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)  # meters
    speed: Optional[float] = Field(None, ge=0)  # m/s
    heading: Optional[float] = Field(None, ge=0, le=360)
    altitude: Optional[float] = None
    battery_level: Optional[float] = Field(None, ge=0, le=100)
    is_moving: bool = True
    timestamp: Optional[datetime] = None


class LocationTrackResponse(BaseModel):
    """Response after submitting a location sample."""
    saved: bool
    notified: bool
    recipient_count: int
    trip_id: str
    duplicate: bool = False


class LocationSampleResponse(BaseModel):
    """Stored location sample."""
    id: str
    trip_id: str
    latitude: float
    longitude: float
    accuracy: float
    speed: float
    heading: float
    altitude: float
    battery_level: Optional[float]
    is_moving: bool
    timestamp: datetime

    class Config:
        from_attributes = True
