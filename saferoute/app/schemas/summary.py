"""
Daily summary and ops schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional


class DailySummaryRequest(BaseModel):
    day: Optional[date] = None  # defaults to today (UTC)


class DailySummaryResponse(BaseModel):
    user_id: str
    day: date
    trip_count: int
    deviation_count: int
    sos_count: int
    last_trip_time: Optional[datetime]
    notified: bool
    recipient_count: int


class RetentionPurgeRequest(BaseModel):
    older_than_days: Optional[int] = Field(None, ge=0)


class RetentionPurgeResponse(BaseModel):
    deleted: int
    older_than_days: int
