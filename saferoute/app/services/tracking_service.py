"""
Tracking orchestration.

Ties the session registry, the sample processor and the dispatcher
together: sample ingestion, the persist and notify timers, and resuming
sessions for trips that were ACTIVE when the process last stopped.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.config import settings
from saferoute.app.core.exceptions import (
    ResourceNotFoundError, InsufficientPermissionsError, TripNotActiveError,
)
from saferoute.app.db.session import AsyncSessionLocal
from saferoute.app.models.alert import AlertType
from saferoute.app.models.location_sample import LocationSample
from saferoute.app.models.trip import Trip
from saferoute.app.models.trip_enums import TripStatus
from saferoute.app.models.user import User
from saferoute.app.services import alert_service, trip_lifecycle
from saferoute.app.services.audit import log_event, AuditAction
from saferoute.app.services.dispatcher import AlertDispatcher
from saferoute.app.services.geo import LatLng
from saferoute.app.services.messages import StatusUpdateMessage
from saferoute.app.services.polyline import decode
from saferoute.app.services.realtime import RealtimeBroadcaster
from saferoute.app.services.sample_processor import ProcessorConfig, evaluate_sample
from saferoute.app.services.tracking_registry import TrackingSession, TrackingSessionRegistry

logger = logging.getLogger("saferoute.tracking")


@dataclass
class IngestResult:
    saved: bool
    notified: bool
    recipient_count: int
    trip_id: str
    duplicate: bool = False


class TrackingService:
    def __init__(
        self,
        dispatcher: AlertDispatcher,
        broadcaster: RealtimeBroadcaster = None,
        session_factory=AsyncSessionLocal,
        config: ProcessorConfig = None,
        persist_interval: float = None,
        notify_interval: float = None,
    ):
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster or dispatcher.broadcaster
        self.session_factory = session_factory
        self.config = config or ProcessorConfig.from_settings()
        self.registry = TrackingSessionRegistry(
            on_persist=self._persist_tick,
            on_notify=self._notify_tick,
            persist_interval=persist_interval if persist_interval is not None else settings.persist_interval_seconds,
            notify_interval=notify_interval if notify_interval is not None else settings.notify_interval_seconds,
        )

    # Sessions

    async def start_session(self, trip: Trip):
        """Ensure a tracking session exists for an ACTIVE trip."""
        last_location = None
        if trip.last_latitude is not None and trip.last_longitude is not None:
            last_location = LatLng(trip.last_latitude, trip.last_longitude)
        restore = {
            "progress_index": trip.route_progress_index or 0,
            "joined": bool(trip.has_joined_route),
            "is_deviated": bool(trip.is_deviated),
            "distance_from_route": trip.distance_from_route,
            "deviation_count": trip.deviation_count or 0,
            "stop_count": trip.stop_count or 0,
            "last_location": last_location,
            "last_sample_time": trip.last_location_time,
            "last_notification_sent": trip.last_notification_sent,
        }
        return await self.registry.start_tracking(
            trip.id,
            trip.user_id,
            path=decode(trip_lifecycle.active_polyline(trip)),
            destination=LatLng(trip.destination_latitude, trip.destination_longitude),
            restore=restore,
        )

    async def stop_session(self, trip_id: str) -> bool:
        return await self.registry.stop_tracking(trip_id)

    def capture_snapshot(self, trip: Trip) -> None:
        """Copy the live session snapshot onto a trip row before it leaves ACTIVE."""
        session = self.registry.get(trip.id)
        if session is not None:
            self.apply_snapshot(trip, session)

    @staticmethod
    def apply_snapshot(trip: Trip, session: TrackingSession) -> None:
        for key, value in snapshot_values(session).items():
            setattr(trip, key, value)

    async def resume_active_trips(self) -> int:
        """Recreate sessions for trips still ACTIVE in the database."""
        async with self.session_factory() as db:
            result = await db.execute(select(Trip).where(Trip.status == TripStatus.ACTIVE))
            trips = result.scalars().all()
        for trip in trips:
            await self.start_session(trip)
        if trips:
            logger.info("Resumed tracking for %d active trips", len(trips))
        return len(trips)

    async def shutdown(self) -> None:
        await self.registry.stop_all()

    # Ingestion

    async def resolve_trip(self, db: AsyncSession, user: User, trip_id: Optional[str]) -> Trip:
        if trip_id:
            trip = await db.get(Trip, trip_id)
            if trip is None:
                raise ResourceNotFoundError("Trip", trip_id)
            if trip.user_id != user.id:
                raise InsufficientPermissionsError("This trip does not belong to you")
        else:
            trip = await trip_lifecycle.get_active_trip(db, user.id)
            if trip is None:
                raise ResourceNotFoundError("Active trip")
        return trip

    async def ingest(self, db: AsyncSession, user: User, sample) -> IngestResult:
        """
        Store and classify one location sample.

        Samples for a trip are processed one at a time, in arrival order,
        under the trip session's lock. Alerts raised by the sample are
        dispatched after the lock is released.

        Raises:
            ResourceNotFoundError: unknown trip, or no active trip when implicit
            TripNotActiveError: the trip is not ACTIVE
        """
        trip = await self.resolve_trip(db, user, getattr(sample, "trip_id", None))
        if trip.status != TripStatus.ACTIVE:
            raise TripNotActiveError(trip.id, trip.status.value)
        trip_id = trip.id

        sample_id = getattr(sample, "id", None) or f"loc_{uuid.uuid4().hex}"
        if await db.get(LocationSample, sample_id) is not None:
            return IngestResult(saved=False, notified=False, recipient_count=0, trip_id=trip_id, duplicate=True)

        session, _ = await self.start_session(trip)

        alerts = []
        async with session.lock:
            row = LocationSample(
                id=sample_id,
                trip_id=trip.id,
                user_id=user.id,
                latitude=sample.latitude,
                longitude=sample.longitude,
                accuracy=sample.accuracy or 0.0,
                speed=sample.speed or 0.0,
                heading=sample.heading or 0.0,
                altitude=sample.altitude or 0.0,
                battery_level=sample.battery_level,
                is_moving=sample.is_moving,
                timestamp=sample.timestamp or datetime.now(timezone.utc),
            )
            db.add(row)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                return IngestResult(saved=False, notified=False, recipient_count=0, trip_id=trip_id, duplicate=True)

            # Queued behind a completion or cancellation: keep the fix only
            await db.refresh(trip)
            if trip.status != TripStatus.ACTIVE:
                await db.commit()
                return IngestResult(saved=True, notified=False, recipient_count=0, trip_id=trip_id)

            # Session state only moves forward once the sample and its alerts are committed
            checkpoint = session.checkpoint()
            try:
                outcome = evaluate_sample(session, row, self.config)
                for event in outcome.events:
                    alerts.append(alert_service.record_alert(
                        db, trip, user.id, event.type, event.latitude, event.longitude,
                        timestamp=event.timestamp,
                        description=event.description,
                        alert_id=f"{sample_id}:{event.type.value}",
                    ))
                    if event.type == AlertType.DEVIATION:
                        trip.deviation_count = (trip.deviation_count or 0) + 1
                    elif event.type == AlertType.STOP:
                        trip.stop_count = (trip.stop_count or 0) + 1

                if session.closed:
                    # Stopped while this sample waited; no timer will flush it
                    logger.info("Sample %s classified after tracking stopped for trip %s", sample_id, trip.id)
                    self.apply_snapshot(trip, session)
                if outcome.arrived:
                    self.apply_snapshot(trip, session)
                    trip_lifecycle.apply_completion(db, trip, actor_id=None, reason="arrived")
                await db.commit()
            except Exception:
                session.restore(checkpoint)
                await db.rollback()
                logger.exception("Sample %s for trip %s was not committed; session state rolled back", sample_id, trip_id)
                raise

            if outcome.arrived:
                await self.stop_session(trip.id)

        notified = False
        recipient_count = 0
        for alert in alerts:
            result = await alert_service.deliver_alert(db, self.dispatcher, alert, user)
            notified = notified or result.is_sent
            recipient_count = max(recipient_count, result.recipient_count)

        await self.broadcaster.publish(user.group_code, "location_update", {
            "trip_id": trip.id,
            "user_id": user.id,
            "latitude": row.latitude,
            "longitude": row.longitude,
            "speed": row.speed,
            "battery_level": row.battery_level,
            "timestamp": row.timestamp,
            "is_deviated": session.is_deviated,
            "is_stopped": session.is_stopped,
        })

        return IngestResult(saved=True, notified=notified, recipient_count=recipient_count, trip_id=trip_id)

    # Timers

    async def _persist_tick(self, session: TrackingSession) -> None:
        await self.flush_snapshot(session)

    async def flush_snapshot(self, session: TrackingSession) -> bool:
        """Write the session snapshot to its trip row if anything changed."""
        if not session.dirty:
            return False
        session.dirty = False
        async with self.session_factory() as db:
            await db.execute(
                update(Trip)
                .where(Trip.id == session.trip_id, Trip.status == TripStatus.ACTIVE)
                .values(**snapshot_values(session))
            )
            await db.commit()
        return True

    async def _notify_tick(self, session: TrackingSession) -> None:
        await self.send_status_update(session)

    async def send_status_update(self, session: TrackingSession) -> bool:
        """Send the periodic progress message if a benign sample is pending."""
        if not session.pending_status or session.last_location is None:
            return False

        async with self.session_factory() as db:
            trip = await db.get(Trip, session.trip_id)
            if trip is None or trip.status != TripStatus.ACTIVE:
                return False
            user = await db.get(User, session.user_id)
            if user is None:
                return False

            session.pending_status = False
            message = StatusUpdateMessage(
                user_name=user.name,
                latitude=session.last_location.latitude,
                longitude=session.last_location.longitude,
                timestamp=session.last_sample_time,
                destination_address=trip.destination_address,
                speed=session.last_speed,
                battery_level=session.last_battery_level,
            )
            result = await self.dispatcher.dispatch(db, message, trigger_user=user, trip_id=trip.id)

            now = datetime.now(timezone.utc)
            session.last_notification_sent = now
            trip.last_notification_sent = now
            await db.commit()
        return result.is_sent

    # Queries

    async def start_tracking(self, db: AsyncSession, trip: Trip, user: User) -> bool:
        if trip.status != TripStatus.ACTIVE:
            raise TripNotActiveError(trip.id, trip.status.value)
        _, created = await self.start_session(trip)
        if created:
            log_event(db, action=AuditAction.TRACKING_STARTED, actor_id=user.id, trip_id=trip.id)
            await db.commit()
        return created

    async def stop_tracking(self, db: AsyncSession, trip: Trip, user: User) -> bool:
        session = self.registry.get(trip.id)
        if session is not None:
            await self.flush_snapshot(session)
        stopped = await self.stop_session(trip.id)
        if stopped:
            log_event(db, action=AuditAction.TRACKING_STOPPED, actor_id=user.id, trip_id=trip.id)
            await db.commit()
        return stopped


def snapshot_values(session: TrackingSession) -> dict:
    values = {
        "route_progress_index": session.progress_index,
        "is_deviated": session.is_deviated,
        "has_joined_route": session.joined,
        "distance_from_route": session.distance_from_route,
    }
    if session.last_location is not None:
        values["last_latitude"] = session.last_location.latitude
        values["last_longitude"] = session.last_location.longitude
        values["last_location_time"] = session.last_sample_time
    return values


async def list_samples(db: AsyncSession, trip_id: str, limit: int = 500) -> List[LocationSample]:
    """Location history of a trip in recording order."""
    result = await db.execute(
        select(LocationSample)
        .where(LocationSample.trip_id == trip_id)
        .order_by(LocationSample.timestamp)
        .limit(limit)
    )
    return list(result.scalars().all())


async def latest_sample(db: AsyncSession, user_id: str) -> Optional[LocationSample]:
    result = await db.execute(
        select(LocationSample)
        .where(LocationSample.user_id == user_id)
        .order_by(desc(LocationSample.timestamp))
        .limit(1)
    )
    return result.scalar_one_or_none()
