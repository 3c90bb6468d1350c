"""
Trip schemas.

Schemas for trip planning, lifecycle changes and visibility.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from saferoute.app.models.trip_enums import TripStatus


class TripCreate(BaseModel):
    """Schema for planning or starting a trip."""
    id: Optional[str] = Field(None, max_length=64)
    source_latitude: float = Field(..., ge=-90, le=90)
    source_longitude: float = Field(..., ge=-180, le=180)
    destination_latitude: float = Field(..., ge=-90, le=90)
    destination_longitude: float = Field(..., ge=-180, le=180)
    source_address: str = Field("", max_length=500)
    destination_address: str = Field("", max_length=500)

    # Route geometry as encoded polylines; route_id fills it from a saved route
    route_polyline: Optional[str] = None
    alternative_polylines: List[str] = []
    active_route_index: int = Field(0, ge=0)
    route_id: Optional[str] = None

    estimated_duration: Optional[float] = Field(None, ge=0)  # seconds
    estimated_distance: Optional[float] = Field(None, ge=0)  # meters


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: str
    user_id: str
    source_latitude: float
    source_longitude: float
    destination_latitude: float
    destination_longitude: float
    source_address: str
    destination_address: str
    route_polyline: str
    alternative_polylines: List[str] = []
    active_route_index: int
    route_id: Optional[str]
    estimated_duration: Optional[float]
    estimated_distance: Optional[float]
    status: TripStatus
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    deviation_count: int
    stop_count: int
    alert_count: int

    # Live snapshot
    last_latitude: Optional[float]
    last_longitude: Optional[float]
    last_location_time: Optional[datetime]
    route_progress_index: int
    is_deviated: bool
    has_joined_route: bool
    distance_from_route: Optional[float]
    last_notification_sent: Optional[datetime]

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TripDetailResponse(TripResponse):
    """Trip with the derived emergency overlay."""
    is_emergency: bool = False


class TripStartResponse(BaseModel):
    """Response after starting a trip."""
    trip: TripResponse
    tracking: bool
    notified: bool
    recipient_count: int


class TripCompleteResponse(BaseModel):
    """Response after completing a trip."""
    trip: TripResponse
    alert_id: str
    notified: bool
    recipient_count: int


class TripListResponse(BaseModel):
    """Schema for trip history."""
    trips: List[TripResponse]
    total: int


class AuditEntryResponse(BaseModel):
    action: str
    actor_id: Optional[str]
    alert_id: Optional[str]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True


class TripAuditResponse(BaseModel):
    """Lifecycle audit trail of a trip, newest first."""
    trip_id: str
    entries: List[AuditEntryResponse]
