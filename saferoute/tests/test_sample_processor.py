"""
Sample classification tests: route progress, arrival, deviation and
stop episodes, low battery.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from saferoute.app.models.alert import AlertType
from saferoute.app.services.geo import LatLng, destination
from saferoute.app.services.sample_processor import ProcessorConfig, evaluate_sample
from saferoute.app.services.tracking_registry import TrackingSession

START = LatLng(12.9700, 77.5900)
T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
CONFIG = ProcessorConfig()

# Straight route 5 km due north, a vertex every 500 m
PATH = [destination(START, 0.0, d) for d in range(0, 5001, 500)]
DESTINATION = PATH[-1]


def along(meters, east=0.0):
    point = destination(START, 0.0, meters)
    if east:
        point = destination(point, 90.0, east)
    return point


def sample(point, seconds, battery=None, speed=5.0):
    return SimpleNamespace(
        latitude=point.latitude,
        longitude=point.longitude,
        timestamp=T0 + timedelta(seconds=seconds),
        speed=speed,
        battery_level=battery,
    )


def routed_session():
    return TrackingSession(trip_id="trip_1", user_id="alice", path=list(PATH), destination=DESTINATION)


def pathless_session():
    return TrackingSession(trip_id="trip_1", user_id="alice", destination=along(20000))


def types(outcome):
    return [e.type for e in outcome.events]


def test_benign_sample_joins_route_and_marks_status_pending():
    session = routed_session()
    outcome = evaluate_sample(session, sample(along(250, east=20), 0), CONFIG)

    assert outcome.events == []
    assert outcome.joined is True
    assert outcome.progress_index == 0
    assert outcome.distance_from_route == pytest.approx(20.0, abs=1.0)
    assert session.pending_status is True
    assert session.samples_processed == 1


def test_far_sample_does_not_join():
    session = routed_session()
    outcome = evaluate_sample(session, sample(along(0, east=400), 0), CONFIG)
    assert outcome.joined is False
    assert outcome.events == []


def test_progress_index_never_moves_backwards():
    session = routed_session()
    evaluate_sample(session, sample(along(3250), 0), CONFIG)
    assert session.progress_index == 6

    evaluate_sample(session, sample(along(1250), 30), CONFIG)
    assert session.progress_index == 6


def test_deviation_raises_one_event_per_episode():
    session = routed_session()
    evaluate_sample(session, sample(along(0), 0), CONFIG)
    evaluate_sample(session, sample(along(500), 60), CONFIG)

    first = evaluate_sample(session, sample(along(800, east=300), 120), CONFIG)
    assert types(first) == [AlertType.DEVIATION]
    assert session.is_deviated is True

    still_off = evaluate_sample(session, sample(along(1000, east=320), 180), CONFIG)
    assert types(still_off) == []

    back = evaluate_sample(session, sample(along(1200), 240), CONFIG)
    assert types(back) == []
    assert session.is_deviated is False

    second = evaluate_sample(session, sample(along(1500, east=300), 300), CONFIG)
    assert types(second) == [AlertType.DEVIATION]
    assert session.deviation_count == 2


def test_no_deviation_before_joining():
    session = routed_session()
    outcome = evaluate_sample(session, sample(along(0, east=1000), 0), CONFIG)
    assert AlertType.DEVIATION not in types(outcome)


def test_stop_detected_once_threshold_is_spanned():
    session = pathless_session()
    here = along(100)
    stops = []
    for t in range(0, 141, 20):
        outcome = evaluate_sample(session, sample(here, t, speed=0.0), CONFIG)
        if AlertType.STOP in types(outcome):
            stops.append(t)

    assert stops == [100]
    assert session.is_stopped is True
    assert session.stop_count == 1


def test_gps_jitter_within_radius_still_counts_as_stopped():
    session = pathless_session()
    here = along(100)
    jitter = [0, 10, 0, 15, 5, 12]
    events = []
    for i, offset in enumerate(jitter):
        point = destination(here, 90.0, offset)
        events += types(evaluate_sample(session, sample(point, i * 20, speed=0.0), CONFIG))
    assert events == [AlertType.STOP]


def test_moving_away_ends_stop_episode_and_allows_a_new_one():
    session = pathless_session()
    first_spot = along(100)
    for t in range(0, 101, 20):
        evaluate_sample(session, sample(first_spot, t, speed=0.0), CONFIG)
    assert session.is_stopped

    second_spot = along(400)
    events = []
    for t in range(120, 221, 20):
        events += types(evaluate_sample(session, sample(second_spot, t, speed=0.0), CONFIG))

    assert events == [AlertType.STOP]
    assert session.stop_count == 2


def test_slow_drift_beyond_radius_is_not_a_stop():
    session = pathless_session()
    events = []
    for i in range(10):
        events += types(evaluate_sample(session, sample(along(100 + i * 20), i * 20), CONFIG))
    assert AlertType.STOP not in events


def test_stop_requires_joining_when_route_exists():
    session = routed_session()
    off_route = along(0, east=1000)
    events = []
    for t in range(0, 201, 20):
        events += types(evaluate_sample(session, sample(off_route, t, speed=0.0), CONFIG))
    assert AlertType.STOP not in events


def test_stop_on_route_after_joining():
    session = routed_session()
    here = along(1000)
    events = []
    for t in range(0, 101, 20):
        events += types(evaluate_sample(session, sample(here, t, speed=0.0), CONFIG))
    assert events == [AlertType.STOP]


def test_arrival_short_circuits_other_checks():
    session = routed_session()
    evaluate_sample(session, sample(along(4500), 0), CONFIG)

    outcome = evaluate_sample(session, sample(along(4950), 60, battery=5.0), CONFIG)
    assert outcome.arrived is True
    assert types(outcome) == [AlertType.TRIP_COMPLETE]
    assert session.low_battery_sent is False


def test_low_battery_reported_once_per_session():
    session = routed_session()
    first = evaluate_sample(session, sample(along(0), 0, battery=14.0), CONFIG)
    assert types(first) == [AlertType.LOW_BATTERY]

    second = evaluate_sample(session, sample(along(100), 30, battery=9.0), CONFIG)
    assert types(second) == []
    assert session.last_battery_level == 9.0


def test_battery_above_threshold_is_benign():
    session = routed_session()
    outcome = evaluate_sample(session, sample(along(0), 0, battery=80.0), CONFIG)
    assert outcome.events == []


def test_out_of_order_sample_does_not_drive_episodes():
    session = routed_session()
    evaluate_sample(session, sample(along(0), 0), CONFIG)
    evaluate_sample(session, sample(along(600), 100), CONFIG)

    late = evaluate_sample(session, sample(along(300, east=400), 50), CONFIG)
    assert types(late) == []
    assert session.is_deviated is False
    assert session.last_sample_time == T0 + timedelta(seconds=100)
    assert session.last_location == along(600)


def test_naive_timestamps_are_treated_as_utc():
    session = pathless_session()
    here = along(100)
    events = []
    for t in range(0, 101, 20):
        naive = (T0 + timedelta(seconds=t)).replace(tzinfo=None)
        s = SimpleNamespace(latitude=here.latitude, longitude=here.longitude, timestamp=naive)
        events += types(evaluate_sample(session, s, CONFIG))
    assert events == [AlertType.STOP]
