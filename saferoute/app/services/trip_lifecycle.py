"""
Trip lifecycle service.

All status changes go through ``transition`` and the TRIP_TRANSITIONS
table. Starting, completing and cancelling also start or stop the trip's
tracking session and notify the Safe Circle.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.exceptions import (
    ResourceNotFoundError, InsufficientPermissionsError, ValidationError,
    ActiveTripExistsError, InvalidTransitionError,
)
from saferoute.app.models.alert import Alert, AlertType
from saferoute.app.models.trip import Trip
from saferoute.app.models.trip_enums import TripStatus, TRIP_TRANSITIONS, normalize_status
from saferoute.app.models.user import User
from saferoute.app.services import alert_service
from saferoute.app.services.audit import log_event, AuditAction
from saferoute.app.services.messages import TripStartedMessage

logger = logging.getLogger("saferoute.trips")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_status(label) -> TripStatus:
    """normalize_status for request input; unknown spellings are a 422."""
    try:
        return normalize_status(label)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"status": label}) from None


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    return target in TRIP_TRANSITIONS[current]


def transition(trip: Trip, target: TripStatus) -> Trip:
    """
    Move a trip to ``target`` and stamp start/end times.

    Raises:
        InvalidTransitionError: if the table does not allow the move
    """
    if not can_transition(trip.status, target):
        raise InvalidTransitionError(trip.id, trip.status.value, target.value)

    trip.status = target
    if target == TripStatus.ACTIVE:
        trip.start_time = utcnow()
        trip.end_time = None
    else:
        trip.end_time = utcnow()
    return trip


def active_polyline(trip: Trip) -> str:
    """Encoded polyline of the route alternative the trip is following."""
    index = trip.active_route_index or 0
    alternatives = trip.alternative_polylines or []
    if 0 < index <= len(alternatives):
        return alternatives[index - 1]
    return trip.route_polyline or ""


# Queries

async def get_trip(db: AsyncSession, trip_id: str) -> Trip:
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


async def get_owned_trip(db: AsyncSession, trip_id: str, user_id: str) -> Trip:
    trip = await get_trip(db, trip_id)
    if trip.user_id != user_id:
        raise InsufficientPermissionsError("This trip does not belong to you")
    return trip


async def get_active_trip(db: AsyncSession, user_id: str) -> Optional[Trip]:
    result = await db.execute(
        select(Trip).where(Trip.user_id == user_id, Trip.status == TripStatus.ACTIVE)
    )
    return result.scalar_one_or_none()


async def list_trips(db: AsyncSession, user_id: str, status=None, limit: int = 20) -> List[Trip]:
    """
    Trip history for a user, newest first.

    Args:
        status: Optional filter in any spelling normalize_status accepts
    """
    query = select(Trip).where(Trip.user_id == user_id)
    if status:
        query = query.where(Trip.status == parse_status(status))
    query = query.order_by(desc(Trip.created_at), desc(Trip.start_time)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def is_in_emergency(db: AsyncSession, trip: Trip) -> bool:
    """True while the trip has an SOS that has not been cancelled."""
    return await alert_service.has_open_sos(db, trip.id)


# Commands

def build_trip(user_id: str, data: dict, status: TripStatus = TripStatus.PLANNED) -> Trip:
    return Trip(
        id=data.get("id") or f"trip_{uuid.uuid4().hex}",
        user_id=user_id,
        source_latitude=data["source_latitude"],
        source_longitude=data["source_longitude"],
        destination_latitude=data["destination_latitude"],
        destination_longitude=data["destination_longitude"],
        source_address=data.get("source_address") or "",
        destination_address=data.get("destination_address") or "",
        route_polyline=data.get("route_polyline") or "",
        alternative_polylines=list(data.get("alternative_polylines") or []),
        active_route_index=data.get("active_route_index") or 0,
        route_id=data.get("route_id"),
        estimated_duration=data.get("estimated_duration"),
        estimated_distance=data.get("estimated_distance"),
        status=status,
        deviation_count=0,
        stop_count=0,
        alert_count=0,
        route_progress_index=0,
        is_deviated=False,
        has_joined_route=False,
    )


async def plan_trip(db: AsyncSession, user: User, data: dict) -> Trip:
    """Create a PLANNED trip."""
    if data.get("id") and await db.get(Trip, data["id"]) is not None:
        raise ValidationError("Trip id already exists", details={"id": data["id"]})

    trip = build_trip(user.id, data)
    db.add(trip)
    log_event(db, action=AuditAction.TRIP_PLANNED, actor_id=user.id, trip_id=trip.id)
    await db.commit()
    await db.refresh(trip)
    return trip


async def start_trip(db: AsyncSession, tracking, user: User, trip: Trip = None, data: dict = None):
    """
    Start a trip: either a PLANNED one, or a new trip built from ``data``.

    Raises:
        ActiveTripExistsError: if the user is already on an ACTIVE trip
        InvalidTransitionError: if the given trip is not PLANNED

    Returns:
        (trip, dispatch result of the trip-started message)
    """
    user_id = user.id
    active = await get_active_trip(db, user_id)
    if active is not None and (trip is None or active.id != trip.id):
        raise ActiveTripExistsError(user_id, active.id)

    if trip is None:
        if data.get("id") and await db.get(Trip, data["id"]) is not None:
            raise ValidationError("Trip id already exists", details={"id": data["id"]})
        trip = build_trip(user.id, data)
        trip.status = TripStatus.PLANNED
        db.add(trip)
    transition(trip, TripStatus.ACTIVE)
    log_event(db, action=AuditAction.TRIP_STARTED, actor_id=user.id, trip_id=trip.id)

    try:
        await db.commit()
    except IntegrityError:
        # One-active-trip index caught a concurrent start
        await db.rollback()
        raise ActiveTripExistsError(user_id)

    await db.refresh(trip)
    await tracking.start_session(trip)

    result = await tracking.dispatcher.dispatch(
        db,
        TripStartedMessage(
            user_name=user.name,
            source_address=trip.source_address or "their start point",
            destination_address=trip.destination_address or "their destination",
        ),
        trigger_user=user,
        trip_id=trip.id,
        event="trip_started",
        event_data={"trip_id": trip.id, "user_id": user.id, "user_name": user.name},
    )
    await db.commit()
    logger.info("Trip %s started for user %s", trip.id, user.id)
    return trip, result


def apply_completion(db: AsyncSession, trip: Trip, actor_id: Optional[str], reason: str) -> Trip:
    """Mark a trip COMPLETED in the current unit of work."""
    transition(trip, TripStatus.COMPLETED)
    log_event(db, action=AuditAction.TRIP_COMPLETED, actor_id=actor_id, trip_id=trip.id, metadata={"reason": reason})
    return trip


async def complete_trip(db: AsyncSession, tracking, trip: Trip, user: User) -> Tuple[Trip, Alert]:
    """
    Complete an ACTIVE trip on the traveller's request.

    Records and dispatches a TRIP_COMPLETE alert, as arrival does.
    """
    if trip.status != TripStatus.ACTIVE:
        raise InvalidTransitionError(trip.id, trip.status.value, TripStatus.COMPLETED.value)

    tracking.capture_snapshot(trip)
    latitude = trip.last_latitude if trip.last_latitude is not None else trip.destination_latitude
    longitude = trip.last_longitude if trip.last_longitude is not None else trip.destination_longitude
    alert = alert_service.record_alert(
        db, trip, user.id, AlertType.TRIP_COMPLETE, latitude, longitude,
        description="Trip completed by traveller",
        alert_id=f"{trip.id}:{AlertType.TRIP_COMPLETE.value}",
    )
    apply_completion(db, trip, actor_id=user.id, reason="user")
    await db.commit()

    await tracking.stop_session(trip.id)
    await alert_service.deliver_alert(db, tracking.dispatcher, alert, user)
    logger.info("Trip %s completed by user %s", trip.id, user.id)
    return trip, alert


async def cancel_trip(db: AsyncSession, tracking, trip: Trip, user: User) -> Trip:
    """Cancel a PLANNED or ACTIVE trip."""
    tracking.capture_snapshot(trip)
    transition(trip, TripStatus.CANCELLED)
    log_event(db, action=AuditAction.TRIP_CANCELLED, actor_id=user.id, trip_id=trip.id)
    await db.commit()

    await tracking.stop_session(trip.id)
    logger.info("Trip %s cancelled by user %s", trip.id, user.id)
    return trip
