"""
Alert recording, delivery and state changes.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.exceptions import (
    ResourceNotFoundError, InsufficientPermissionsError, AlertNotCancellableError
)
from saferoute.app.models.alert import Alert, AlertType, CANCELLABLE_ALERT_TYPES
from saferoute.app.models.alert_delivery import AlertDelivery
from saferoute.app.models.trip import Trip
from saferoute.app.models.trip_enums import TripStatus
from saferoute.app.models.user import User
from saferoute.app.services.audit import log_event, AuditAction
from saferoute.app.services.dispatcher import AlertDispatcher, DispatchResult
from saferoute.app.services.messages import AllClearMessage, message_for_alert

logger = logging.getLogger("saferoute.alerts")


def record_alert(
    db: AsyncSession,
    trip: Trip,
    user_id: str,
    type: AlertType,
    latitude: float,
    longitude: float,
    timestamp: Optional[datetime] = None,
    description: Optional[str] = None,
    alert_id: Optional[str] = None,
) -> Alert:
    """
    Add an alert to the session and count it against the trip.

    Counters only move while the trip is ACTIVE; the caller commits.
    """
    alert = Alert(
        id=alert_id or f"{trip.id}:{type.value}:{int(datetime.now(timezone.utc).timestamp() * 1000)}",
        trip_id=trip.id,
        user_id=user_id,
        type=type,
        latitude=latitude,
        longitude=longitude,
        timestamp=timestamp or datetime.now(timezone.utc),
        description=description,
        is_sent=False,
        is_acknowledged=False,
        is_cancelled=False,
        recipient_count=0,
        delivered_count=0,
    )
    db.add(alert)
    if trip.status == TripStatus.ACTIVE:
        trip.alert_count = (trip.alert_count or 0) + 1
    return alert


def alert_event(alert: Alert, user: User) -> dict:
    return {
        "id": alert.id,
        "user_id": alert.user_id,
        "trip_id": alert.trip_id,
        "type": alert.type.value,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "timestamp": alert.timestamp,
        "user_name": user.name,
    }


async def deliver_alert(db: AsyncSession, dispatcher: AlertDispatcher, alert: Alert, user: User) -> DispatchResult:
    """Dispatch a recorded alert, store the outcome and commit."""
    result = await dispatcher.dispatch(
        db,
        message_for_alert(alert, user),
        trigger_user=user,
        alert_id=alert.id,
        trip_id=alert.trip_id,
        event="alert",
        event_data=alert_event(alert, user),
    )
    result.apply_to(alert)
    await db.commit()
    return result


async def get_alert(db: AsyncSession, alert_id: str) -> Alert:
    alert = await db.get(Alert, alert_id)
    if alert is None:
        raise ResourceNotFoundError("Alert", alert_id)
    return alert


async def create_alert(
    db: AsyncSession,
    dispatcher: AlertDispatcher,
    user: User,
    trip_id: str,
    type: AlertType,
    latitude: float,
    longitude: float,
    timestamp: Optional[datetime] = None,
    description: Optional[str] = None,
    alert_id: Optional[str] = None,
) -> Tuple[Alert, bool]:
    """
    Record and dispatch a user-raised alert.

    A replayed alert id returns the stored alert without dispatching again.

    Returns:
        (alert, created)
    """
    if alert_id:
        existing = await db.get(Alert, alert_id)
        if existing is not None:
            if existing.user_id != user.id:
                raise InsufficientPermissionsError("Alert belongs to another user")
            return existing, False

    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    if trip.user_id != user.id:
        raise InsufficientPermissionsError("This trip does not belong to you")

    alert = record_alert(
        db, trip, user.id, type, latitude, longitude,
        timestamp=timestamp, description=description, alert_id=alert_id,
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if not alert_id:
            raise
        # Lost a race with a concurrent replay of the same id
        return await get_alert(db, alert_id), False

    await deliver_alert(db, dispatcher, alert, user)
    return alert, True


async def cancel_alert(
    db: AsyncSession,
    dispatcher: AlertDispatcher,
    alert_id: str,
    user: User,
) -> Tuple[Alert, DispatchResult]:
    """
    Cancel an SOS and tell the circle the user is safe.

    Raises:
        AlertNotCancellableError: for non-SOS or already cancelled alerts
    """
    alert = await get_alert(db, alert_id)
    if alert.user_id != user.id:
        raise InsufficientPermissionsError("Only the user who raised an alert can cancel it")
    if alert.type not in CANCELLABLE_ALERT_TYPES:
        raise AlertNotCancellableError(alert.id, "Only SOS alerts can be cancelled")
    if alert.is_cancelled:
        raise AlertNotCancellableError(alert.id, "Alert already cancelled")

    alert.is_cancelled = True
    log_event(db, action=AuditAction.ALERT_CANCELLED, actor_id=user.id, trip_id=alert.trip_id, alert_id=alert.id)
    await db.commit()

    result = await dispatcher.dispatch(
        db,
        AllClearMessage(user_name=user.name),
        trigger_user=user,
        alert_id=alert.id,
        trip_id=alert.trip_id,
        event="alert_cancelled",
        event_data={"id": alert.id, "user_id": alert.user_id, "trip_id": alert.trip_id},
    )
    await db.commit()
    return alert, result


async def acknowledge_alert(db: AsyncSession, alert_id: str, user: User) -> Alert:
    alert = await get_alert(db, alert_id)
    if not alert.is_acknowledged:
        alert.is_acknowledged = True
        log_event(db, action=AuditAction.ALERT_ACKNOWLEDGED, actor_id=user.id, trip_id=alert.trip_id, alert_id=alert.id)
        await db.commit()
    return alert


async def list_trip_alerts(db: AsyncSession, trip_id: str) -> List[Alert]:
    result = await db.execute(
        select(Alert).where(Alert.trip_id == trip_id).order_by(desc(Alert.timestamp))
    )
    return list(result.scalars().all())


async def list_user_alerts(db: AsyncSession, user_id: str, limit: int = 20) -> List[Alert]:
    result = await db.execute(
        select(Alert).where(Alert.user_id == user_id).order_by(desc(Alert.timestamp)).limit(limit)
    )
    return list(result.scalars().all())


async def list_deliveries(db: AsyncSession, alert_id: str) -> List[AlertDelivery]:
    result = await db.execute(
        select(AlertDelivery).where(AlertDelivery.alert_id == alert_id).order_by(AlertDelivery.id)
    )
    return list(result.scalars().all())


async def has_open_sos(db: AsyncSession, trip_id: str) -> bool:
    result = await db.execute(
        select(Alert.id).where(
            Alert.trip_id == trip_id,
            Alert.type == AlertType.SOS,
            Alert.is_cancelled == False,  # noqa: E712
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None
