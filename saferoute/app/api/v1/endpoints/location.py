"""
Location API Endpoints.

Location samples feed the tracking engine; history endpoints read the
stored breadcrumbs back.
"""

from typing import List
from fastapi import APIRouter, Depends, Path, Body, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user, get_tracking_service
from saferoute.app.core.exceptions import InsufficientPermissionsError, ResourceNotFoundError
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.location import (
    LocationTrackRequest, LocationTrackResponse, LocationSampleResponse,
)
from saferoute.app.services import trip_lifecycle, tracking_service
from saferoute.app.services.circle_service import can_view

router = APIRouter(prefix="/location", tags=["Location"])


@router.post("/track", response_model=LocationTrackResponse)
async def track_location(
    sample: LocationTrackRequest = Body(...),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a location sample for the caller's trip.

    Returns 409 "Trip is not active" for PLANNED, COMPLETED or CANCELLED
    trips. A resubmitted sample id is acknowledged with duplicate=true.
    """
    result = await tracking.ingest(db, current_user, sample)
    return LocationTrackResponse(
        saved=result.saved,
        notified=result.notified,
        recipient_count=result.recipient_count,
        trip_id=result.trip_id,
        duplicate=result.duplicate,
    )


@router.get("/trips/{trip_id}", response_model=List[LocationSampleResponse])
async def get_trip_locations(
    trip_id: str = Path(..., description="Trip ID"),
    limit: int = Query(500, ge=1, le=5000),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Location history of a trip, oldest first."""
    trip = await trip_lifecycle.get_trip(db, trip_id)
    if not await can_view(db, current_user, trip.user_id):
        raise InsufficientPermissionsError("You cannot view this trip")
    samples = await tracking_service.list_samples(db, trip_id, limit=limit)
    return [LocationSampleResponse.model_validate(s) for s in samples]


@router.get("/latest", response_model=LocationSampleResponse)
async def get_latest_location(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's most recent location sample."""
    sample = await tracking_service.latest_sample(db, current_user.id)
    if sample is None:
        raise ResourceNotFoundError("Location sample")
    return LocationSampleResponse.model_validate(sample)
