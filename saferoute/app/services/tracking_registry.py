"""
Tracking Session Registry.

Keeps one in-memory TrackingSession per ACTIVE trip. Each session owns
its own lock, so samples for one trip are processed strictly in arrival
order while different trips proceed in parallel, and two timers:

- persist: flushes the live snapshot to the trip row
- notify: sends the periodic status update to the Safe Circle

The registry is created by the application lifespan and kept on
``app.state``; nothing here is a module-level singleton.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from saferoute.app.services.geo import LatLng

logger = logging.getLogger("saferoute.tracking")

TimerHandler = Callable[["TrackingSession"], Awaitable[None]]


@dataclass
class StopSample:
    point: LatLng
    at: float  # epoch seconds


# Fields the sample processor mutates
EPISODE_FIELDS = (
    "progress_index", "joined", "is_deviated", "distance_from_route", "deviation_count",
    "stop_window", "is_stopped", "stop_anchor", "stop_count",
    "last_location", "last_sample_time", "last_speed", "last_battery_level", "samples_processed",
    "low_battery_sent", "pending_status", "dirty",
)


@dataclass
class TrackingSession:
    """Live monitoring state for one ACTIVE trip."""
    trip_id: str
    user_id: str
    path: List[LatLng] = field(default_factory=list)
    destination: Optional[LatLng] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    # Route adherence
    progress_index: int = 0
    joined: bool = False
    is_deviated: bool = False
    distance_from_route: Optional[float] = None
    deviation_count: int = 0

    # Motion
    stop_window: Deque[StopSample] = field(default_factory=deque, repr=False)
    is_stopped: bool = False
    stop_anchor: Optional[LatLng] = None
    stop_count: int = 0

    # Last accepted fix
    last_location: Optional[LatLng] = None
    last_sample_time: Optional[datetime] = None
    last_speed: float = 0.0
    last_battery_level: Optional[float] = None
    samples_processed: int = 0

    low_battery_sent: bool = False
    pending_status: bool = False
    last_notification_sent: Optional[datetime] = None
    dirty: bool = False

    closed: bool = False
    persist_task: Optional[asyncio.Task] = field(default=None, repr=False)
    notify_task: Optional[asyncio.Task] = field(default=None, repr=False)

    def checkpoint(self) -> dict:
        """Copy of the episode state, for undoing an evaluation that was not committed."""
        state = {name: getattr(self, name) for name in EPISODE_FIELDS}
        state["stop_window"] = deque(self.stop_window)
        return state

    def restore(self, state: dict) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def snapshot(self) -> dict:
        return {
            "trip_id": self.trip_id,
            "user_id": self.user_id,
            "started_at": self.started_at,
            "last_sample_time": self.last_sample_time,
            "samples_processed": self.samples_processed,
            "progress_index": self.progress_index,
            "joined": self.joined,
            "is_deviated": self.is_deviated,
            "is_stopped": self.is_stopped,
            "distance_from_route": self.distance_from_route,
            "last_notification_sent": self.last_notification_sent,
        }


class TrackingSessionRegistry:
    """
    Create, look up and destroy tracking sessions.

    Creation and destruction are serialised by the registry lock, so a
    concurrent start/stop pair never leaves a half-built session or an
    orphaned timer behind.
    """

    def __init__(
        self,
        on_persist: Optional[TimerHandler] = None,
        on_notify: Optional[TimerHandler] = None,
        persist_interval: float = 15.0,
        notify_interval: float = 300.0,
    ):
        self._sessions: Dict[str, TrackingSession] = {}
        self._lock = asyncio.Lock()
        self._on_persist = on_persist
        self._on_notify = on_notify
        self.persist_interval = persist_interval
        self.notify_interval = notify_interval

    async def start_tracking(
        self,
        trip_id: str,
        user_id: str,
        path: Optional[List[LatLng]] = None,
        destination: Optional[LatLng] = None,
        restore: Optional[dict] = None,
    ) -> Tuple[TrackingSession, bool]:
        """
        Get or create the session for a trip.

        Args:
            restore: Initial session fields for a new session, e.g. the
                persisted snapshot of a trip resumed after a restart

        Returns:
            (session, created) - created is False when one already existed
        """
        async with self._lock:
            existing = self._sessions.get(trip_id)
            if existing is not None:
                return existing, False

            session = TrackingSession(
                trip_id=trip_id,
                user_id=user_id,
                path=list(path or []),
                destination=destination,
                **(restore or {}),
            )
            if self._on_persist is not None:
                session.persist_task = asyncio.create_task(
                    self._run_timer(session, self.persist_interval, self._on_persist, "persist"),
                    name=f"persist:{trip_id}",
                )
            if self._on_notify is not None:
                session.notify_task = asyncio.create_task(
                    self._run_timer(session, self.notify_interval, self._on_notify, "notify"),
                    name=f"notify:{trip_id}",
                )
            self._sessions[trip_id] = session

        logger.info("Tracking started for trip %s (path vertices=%d)", trip_id, len(session.path))
        return session, True

    async def stop_tracking(self, trip_id: str) -> bool:
        """
        Destroy the session for a trip. Safe to call for unknown trips.

        Returns:
            True if a session was removed
        """
        async with self._lock:
            session = self._sessions.pop(trip_id, None)
            if session is None:
                return False
            session.closed = True
            for task in (session.persist_task, session.notify_task):
                if task is not None and task is not asyncio.current_task():
                    task.cancel()

        logger.info("Tracking stopped for trip %s after %d samples", trip_id, session.samples_processed)
        return True

    def get(self, trip_id: str) -> Optional[TrackingSession]:
        return self._sessions.get(trip_id)

    def active_trip_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, trip_id):
        return trip_id in self._sessions

    def stats(self) -> dict:
        return {
            "active_count": len(self._sessions),
            "trips": [session.snapshot() for session in self._sessions.values()],
            "config": {
                "persist_interval_seconds": self.persist_interval,
                "notify_interval_seconds": self.notify_interval,
            },
        }

    async def stop_all(self) -> int:
        """Stop every session and wait for their timers to wind down."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            tasks = []
            for session in sessions:
                session.closed = True
                for task in (session.persist_task, session.notify_task):
                    if task is not None:
                        task.cancel()
                        tasks.append(task)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if sessions:
            logger.info("Stopped %d tracking sessions", len(sessions))
        return len(sessions)

    async def _run_timer(self, session: TrackingSession, interval: float, handler: TimerHandler, name: str):
        while True:
            await asyncio.sleep(interval)
            if session.closed:
                return
            try:
                await handler(session)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s timer failed for trip %s", name, session.trip_id)
