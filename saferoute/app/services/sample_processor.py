"""
Location Sample Processor.

Classifies one location sample against a tracking session: route
progress, arrival, deviation episodes, stop episodes and low battery.
Pure logic; the tracking service does all persistence and dispatch.

Evaluation order per sample:
    1. progress / route join
    2. arrival (short-circuits everything below)
    3. deviation episode
    4. stop episode
    5. low battery
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from saferoute.app.core.config import settings
from saferoute.app.models.alert import AlertType
from saferoute.app.services.geo import LatLng, closest_point_on_path, haversine_distance
from saferoute.app.services.tracking_registry import StopSample, TrackingSession


@dataclass(frozen=True)
class ProcessorConfig:
    deviation_threshold_m: float = 150.0
    arrival_threshold_m: float = 100.0
    stop_radius_m: float = 30.0
    stop_time_threshold_s: float = 90.0
    stop_window_max_s: float = 300.0
    low_battery_threshold: float = 15.0

    @classmethod
    def from_settings(cls, s=settings) -> "ProcessorConfig":
        return cls(
            deviation_threshold_m=s.deviation_threshold_meters,
            arrival_threshold_m=s.arrival_threshold_meters,
            stop_radius_m=s.stop_radius_meters,
            stop_time_threshold_s=s.stop_time_threshold_seconds,
            stop_window_max_s=s.stop_window_max_seconds,
            low_battery_threshold=s.low_battery_threshold,
        )


@dataclass
class SampleEvent:
    """An alert-worthy observation produced by a sample."""
    type: AlertType
    latitude: float
    longitude: float
    timestamp: datetime
    description: str = ""


@dataclass
class SampleOutcome:
    progress_index: int
    distance_from_route: Optional[float]
    joined: bool
    events: List[SampleEvent] = field(default_factory=list)
    arrived: bool = False


def as_epoch(ts: datetime) -> float:
    # Naive timestamps are UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def evaluate_sample(session: TrackingSession, sample, config: ProcessorConfig = None) -> SampleOutcome:
    """
    Evaluate one sample and update the session's episode state in place.

    Args:
        session: Tracking session of the sample's trip
        sample: Object with latitude, longitude, timestamp and optionally
            speed and battery_level (a LocationSample row or request model)
        config: Thresholds; defaults to application settings

    Returns:
        SampleOutcome with any events to dispatch
    """
    config = config or ProcessorConfig.from_settings()
    point = LatLng(sample.latitude, sample.longitude)
    ts = sample.timestamp
    now = as_epoch(ts)

    # Out-of-order samples are stored but never drive episode state
    is_newest = session.last_sample_time is None or now >= as_epoch(session.last_sample_time)
    if is_newest:
        session.last_location = point
        session.last_sample_time = ts
        session.last_speed = getattr(sample, "speed", None) or 0.0
    battery_level = getattr(sample, "battery_level", None)
    if battery_level is not None:
        session.last_battery_level = battery_level
    session.samples_processed += 1
    session.dirty = True

    # 1. Progress
    projection = closest_point_on_path(point, session.path)
    if projection is not None:
        session.distance_from_route = projection.distance
        if projection.distance <= config.deviation_threshold_m:
            session.joined = True
            session.progress_index = max(session.progress_index, projection.index)

    outcome = SampleOutcome(
        progress_index=session.progress_index,
        distance_from_route=projection.distance if projection is not None else None,
        joined=session.joined,
    )

    # 2. Arrival
    if session.destination is not None:
        to_destination = haversine_distance(point, session.destination)
        if to_destination <= config.arrival_threshold_m:
            outcome.arrived = True
            outcome.events.append(SampleEvent(
                type=AlertType.TRIP_COMPLETE,
                latitude=point.latitude,
                longitude=point.longitude,
                timestamp=ts,
                description=f"Arrived within {to_destination:.0f} m of destination",
            ))
            return outcome

    if is_newest:
        # 3. Deviation
        if projection is not None and session.joined:
            _check_deviation(session, projection.distance, point, ts, config, outcome)

        # 4. Stop; a trip without a path has nothing to join
        if session.joined or not session.path:
            _check_stop(session, point, ts, now, config, outcome)

    # 5. Low battery
    if (
        battery_level is not None
        and battery_level <= config.low_battery_threshold
        and not session.low_battery_sent
    ):
        session.low_battery_sent = True
        outcome.events.append(SampleEvent(
            type=AlertType.LOW_BATTERY,
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp=ts,
            description=f"Battery at {battery_level:.0f}%",
        ))

    if not outcome.events:
        session.pending_status = True
    return outcome


def _check_deviation(session, distance, point, ts, config, outcome):
    if distance > config.deviation_threshold_m:
        if session.is_deviated:
            return
        session.is_deviated = True
        session.deviation_count += 1
        outcome.events.append(SampleEvent(
            type=AlertType.DEVIATION,
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp=ts,
            description=f"Deviated {distance:.0f} m from route",
        ))
    elif session.is_deviated:
        # Back on route; the episode ends silently
        session.is_deviated = False


def _check_stop(session, point, ts, now, config, outcome):
    window = session.stop_window

    if session.is_stopped:
        if haversine_distance(point, session.stop_anchor) > config.stop_radius_m:
            session.is_stopped = False
            session.stop_anchor = None
            window.clear()
            window.append(StopSample(point, now))
        return

    window.append(StopSample(point, now))

    # Keep the smallest suffix still reaching back threshold seconds
    while len(window) >= 2 and window[1].at <= now - config.stop_time_threshold_s:
        window.popleft()
    while len(window) >= 2 and now - window[0].at > config.stop_window_max_s:
        window.popleft()

    span = now - window[0].at
    if span < config.stop_time_threshold_s:
        return

    anchor = window[0].point
    if all(haversine_distance(s.point, anchor) <= config.stop_radius_m for s in window):
        session.is_stopped = True
        session.stop_anchor = anchor
        session.stop_count += 1
        outcome.events.append(SampleEvent(
            type=AlertType.STOP,
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp=ts,
            description=f"Stationary for {span:.0f} s",
        ))
