"""
Alert schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

from saferoute.app.models.alert import AlertType

USER_RAISED_TYPES = frozenset({AlertType.SOS, AlertType.CHECK_IN})


class AlertCreate(BaseModel):
    """Schema for raising an alert (SOS or check-in)."""
    id: Optional[str] = Field(None, max_length=128)
    trip_id: str
    type: AlertType
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator("type")
    @classmethod
    def only_user_raised(cls, value: AlertType) -> AlertType:
        # Every other type is raised by tracking
        if value not in USER_RAISED_TYPES:
            raise ValueError(f"{value.value} alerts cannot be raised directly")
        return value


class AlertResponse(BaseModel):
    """Schema for alert response."""
    id: str
    trip_id: str
    user_id: str
    type: AlertType
    latitude: float
    longitude: float
    timestamp: datetime
    description: Optional[str]
    is_sent: bool
    is_acknowledged: bool
    is_cancelled: bool
    recipient_count: int
    delivered_count: int

    class Config:
        from_attributes = True


class AlertCreateResponse(BaseModel):
    """Response after raising an alert."""
    alert: AlertResponse
    created: bool


class AlertCancelResponse(BaseModel):
    """Response after cancelling an SOS."""
    alert: AlertResponse
    notified: bool
    recipient_count: int


class AlertDeliveryResponse(BaseModel):
    """One recipient's delivery outcome."""
    id: int
    alert_id: Optional[str]
    message_kind: str
    recipient_user_id: str
    channel: Optional[str]
    success: bool
    fell_back: bool
    error: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class AlertDeliveryListResponse(BaseModel):
    alert_id: str
    deliveries: List[AlertDeliveryResponse]
