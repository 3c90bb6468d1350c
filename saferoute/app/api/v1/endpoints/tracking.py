"""
Tracking control API Endpoints.

Explicit start/stop of a trip's tracking session. Both are idempotent.
"""

from fastapi import APIRouter, Depends, Body
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user, get_tracking_service
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.tracking import (
    TrackingControlRequest, TrackingControlResponse, TrackingStatsResponse,
)
from saferoute.app.services import trip_lifecycle

router = APIRouter(prefix="/tracking", tags=["Tracking"])


@router.post("/start", response_model=TrackingControlResponse)
async def start_tracking(
    request: TrackingControlRequest = Body(...),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """Start tracking an ACTIVE trip (no-op if already tracked)."""
    trip = await trip_lifecycle.get_owned_trip(db, request.trip_id, current_user.id)
    created = await tracking.start_tracking(db, trip, current_user)
    return TrackingControlResponse(trip_id=trip.id, tracking=True, changed=created)


@router.post("/stop", response_model=TrackingControlResponse)
async def stop_tracking(
    request: TrackingControlRequest = Body(...),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """Stop tracking a trip (no-op if not tracked). The trip stays ACTIVE."""
    trip = await trip_lifecycle.get_owned_trip(db, request.trip_id, current_user.id)
    stopped = await tracking.stop_tracking(db, trip, current_user)
    return TrackingControlResponse(trip_id=trip.id, tracking=False, changed=stopped)


@router.get("/stats", response_model=TrackingStatsResponse)
async def tracking_stats(
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
):
    """Active tracking sessions in this process."""
    return tracking.registry.stats()
