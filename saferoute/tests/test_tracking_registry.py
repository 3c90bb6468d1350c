"""
Tracking session registry tests.
"""

import asyncio
import pytest
from saferoute.app.services.geo import LatLng
from saferoute.app.services.tracking_registry import TrackingSessionRegistry


@pytest.mark.asyncio
async def test_start_tracking_is_idempotent():
    registry = TrackingSessionRegistry()
    first, created = await registry.start_tracking("trip_1", "alice", path=[LatLng(1.0, 2.0)])
    again, created_again = await registry.start_tracking("trip_1", "alice")

    assert created is True
    assert created_again is False
    assert again is first
    assert len(registry) == 1
    assert "trip_1" in registry


@pytest.mark.asyncio
async def test_concurrent_starts_create_one_session():
    registry = TrackingSessionRegistry()
    results = await asyncio.gather(*(registry.start_tracking("trip_1", "alice") for _ in range(10)))

    assert sum(1 for _, created in results if created) == 1
    assert len({id(session) for session, _ in results}) == 1


@pytest.mark.asyncio
async def test_stop_tracking_is_idempotent():
    registry = TrackingSessionRegistry()
    session, _ = await registry.start_tracking("trip_1", "alice")

    assert await registry.stop_tracking("trip_1") is True
    assert session.closed is True
    assert await registry.stop_tracking("trip_1") is False
    assert await registry.stop_tracking("unknown") is False
    assert registry.get("trip_1") is None


@pytest.mark.asyncio
async def test_restore_seeds_new_session():
    registry = TrackingSessionRegistry()
    session, _ = await registry.start_tracking(
        "trip_1", "alice", restore={"progress_index": 4, "joined": True, "deviation_count": 2}
    )
    assert session.progress_index == 4
    assert session.joined is True
    assert session.deviation_count == 2


@pytest.mark.asyncio
async def test_timers_fire_until_stopped():
    persisted = []
    notified = []

    async def on_persist(session):
        persisted.append(session.trip_id)

    async def on_notify(session):
        notified.append(session.trip_id)

    registry = TrackingSessionRegistry(on_persist, on_notify, persist_interval=0.01, notify_interval=0.02)
    session, _ = await registry.start_tracking("trip_1", "alice")
    await asyncio.sleep(0.1)
    await registry.stop_tracking("trip_1")
    await asyncio.sleep(0)

    assert len(persisted) >= 2
    assert len(notified) >= 1
    assert session.persist_task.cancelled() or session.persist_task.done()

    count = len(persisted)
    await asyncio.sleep(0.05)
    assert len(persisted) == count


@pytest.mark.asyncio
async def test_timer_survives_handler_errors():
    calls = []

    async def flaky(session):
        calls.append(1)
        raise RuntimeError("database down")

    registry = TrackingSessionRegistry(on_persist=flaky, persist_interval=0.01)
    await registry.start_tracking("trip_1", "alice")
    await asyncio.sleep(0.08)
    await registry.stop_all()

    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_stats_and_stop_all():
    registry = TrackingSessionRegistry(persist_interval=15.0, notify_interval=300.0)
    await registry.start_tracking("trip_1", "alice")
    await registry.start_tracking("trip_2", "bob")

    stats = registry.stats()
    assert stats["active_count"] == 2
    assert {t["trip_id"] for t in stats["trips"]} == {"trip_1", "trip_2"}
    assert stats["config"] == {"persist_interval_seconds": 15.0, "notify_interval_seconds": 300.0}

    assert await registry.stop_all() == 2
    assert len(registry) == 0
