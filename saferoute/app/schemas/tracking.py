"""
Tracking session control schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class TrackingControlRequest(BaseModel):
    trip_id: str


class TrackingControlResponse(BaseModel):
    trip_id: str
    tracking: bool
    changed: bool  # False when the call was a no-op


class TrackedTrip(BaseModel):
    trip_id: str
    user_id: str
    started_at: datetime
    last_sample_time: Optional[datetime]
    samples_processed: int
    progress_index: int
    joined: bool
    is_deviated: bool
    is_stopped: bool
    distance_from_route: Optional[float]
    last_notification_sent: Optional[datetime]


class TrackingStatsResponse(BaseModel):
    active_count: int
    trips: List[TrackedTrip]
    config: dict
