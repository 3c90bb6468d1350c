"""
Trip API Endpoints.

Travellers plan, start, complete and cancel trips; circle members can
look at a trip and see whether it is in an emergency.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Body, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user, get_tracking_service
from saferoute.app.core.exceptions import InsufficientPermissionsError, ResourceNotFoundError
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.trip import (
    TripCreate, TripResponse, TripDetailResponse, TripStartResponse,
    TripCompleteResponse, TripListResponse, TripAuditResponse,
)
from saferoute.app.services import trip_lifecycle, route_service
from saferoute.app.services.audit import get_audit_trail
from saferoute.app.services.circle_service import can_view

router = APIRouter(prefix="/trips", tags=["Trips"])


async def _trip_data(db: AsyncSession, user: User, trip_in: TripCreate) -> dict:
    data = trip_in.model_dump()
    # A saved route supplies the geometry when the client sends none
    if data.get("route_id"):
        route = await route_service.get_owned_route(db, data["route_id"], user.id)
        if not data.get("route_polyline"):
            data["route_polyline"] = await route_service.encoded_path(db, route)
    return data


@router.post("/start", response_model=TripStartResponse, status_code=status.HTTP_201_CREATED)
async def start_new_trip(
    trip_in: TripCreate = Body(...),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a trip and start it immediately.

    Validates:
    - The user has no other ACTIVE trip

    Actions:
    - Starts the trip's tracking session
    - Tells the Safe Circle the trip has started
    """
    data = await _trip_data(db, current_user, trip_in)
    trip, result = await trip_lifecycle.start_trip(db, tracking, current_user, data=data)
    return TripStartResponse(
        trip=TripResponse.model_validate(trip),
        tracking=trip.id in tracking.registry,
        notified=result.is_sent,
        recipient_count=result.recipient_count,
    )


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def plan_trip(
    trip_in: TripCreate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a PLANNED trip to start later."""
    data = await _trip_data(db, current_user, trip_in)
    trip = await trip_lifecycle.plan_trip(db, current_user, data)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/start", response_model=TripStartResponse)
async def start_planned_trip(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """Start a PLANNED trip."""
    trip = await trip_lifecycle.get_owned_trip(db, trip_id, current_user.id)
    trip, result = await trip_lifecycle.start_trip(db, tracking, current_user, trip=trip)
    return TripStartResponse(
        trip=TripResponse.model_validate(trip),
        tracking=trip.id in tracking.registry,
        notified=result.is_sent,
        recipient_count=result.recipient_count,
    )


@router.post("/{trip_id}/complete", response_model=TripCompleteResponse)
async def complete_trip(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Complete an ACTIVE trip.

    Stops tracking and sends the trip-complete alert to the Safe Circle.
    """
    trip = await trip_lifecycle.get_owned_trip(db, trip_id, current_user.id)
    trip, alert = await trip_lifecycle.complete_trip(db, tracking, trip, current_user)
    return TripCompleteResponse(
        trip=TripResponse.model_validate(trip),
        alert_id=alert.id,
        notified=alert.is_sent,
        recipient_count=alert.recipient_count,
    )


@router.post("/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    tracking=Depends(get_tracking_service),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a PLANNED or ACTIVE trip."""
    trip = await trip_lifecycle.get_owned_trip(db, trip_id, current_user.id)
    trip = await trip_lifecycle.cancel_trip(db, tracking, trip, current_user)
    return TripResponse.model_validate(trip)


@router.get("/active", response_model=TripDetailResponse)
async def get_active_trip(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's ACTIVE trip."""
    trip = await trip_lifecycle.get_active_trip(db, current_user.id)
    if trip is None:
        raise ResourceNotFoundError("Active trip")
    response = TripDetailResponse.model_validate(trip)
    response.is_emergency = await trip_lifecycle.is_in_emergency(db, trip)
    return response


@router.get("", response_model=TripListResponse)
async def list_trips(
    status_filter: Optional[str] = Query(None, alias="status", description="Any accepted status spelling"),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Trip history of the caller, newest first."""
    trips = await trip_lifecycle.list_trips(db, current_user.id, status=status_filter, limit=limit)
    return TripListResponse(
        trips=[TripResponse.model_validate(t) for t in trips],
        total=len(trips),
    )


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """A trip of the caller or of someone in the caller's circle."""
    trip = await trip_lifecycle.get_trip(db, trip_id)
    if not await can_view(db, current_user, trip.user_id):
        raise InsufficientPermissionsError("You cannot view this trip")
    response = TripDetailResponse.model_validate(trip)
    response.is_emergency = await trip_lifecycle.is_in_emergency(db, trip)
    return response


@router.get("/{trip_id}/audit", response_model=TripAuditResponse)
async def get_trip_audit(
    trip_id: str = Path(..., description="Trip ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Lifecycle audit trail of one of the caller's trips."""
    trip = await trip_lifecycle.get_owned_trip(db, trip_id, current_user.id)
    entries = await get_audit_trail(db, trip_id=trip.id, limit=limit)
    return TripAuditResponse(trip_id=trip.id, entries=entries)
