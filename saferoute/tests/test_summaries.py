"""
Daily summary and retention tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from saferoute.app.models.alert import AlertType
from saferoute.app.models.audit_log import AuditLog
from saferoute.app.models.location_sample import LocationSample
from saferoute.app.models.trip_enums import TripStatus
from saferoute.app.services.alert_service import record_alert
from saferoute.app.services.audit import AuditAction
from saferoute.app.services.summary_service import build_daily_summary
from saferoute.app.services.trip_lifecycle import build_trip
from saferoute.tests.factories import auth_headers, trip_payload

DAY = datetime(2026, 3, 1, tzinfo=timezone.utc)


async def add_trip(db, trip_id, start_hour, end_hour, status=TripStatus.COMPLETED, day=DAY):
    trip = build_trip("alice", trip_payload(id=trip_id), status)
    trip.start_time = day + timedelta(hours=start_hour)
    trip.end_time = day + timedelta(hours=end_hour) if end_hour is not None else None
    db.add(trip)
    await db.commit()
    return trip


async def add_sample(db, sample_id, trip_id, when):
    db.add(LocationSample(
        id=sample_id, trip_id=trip_id, user_id="alice",
        latitude=12.97, longitude=77.59, timestamp=when,
    ))
    await db.commit()


@pytest.mark.asyncio
async def test_daily_summary_counts(db_session, circle):
    morning = await add_trip(db_session, "t1", 8, 9)
    await add_trip(db_session, "t2", 17, 18)
    await add_trip(db_session, "t_prev", -5, -4)

    record_alert(db_session, morning, "alice", AlertType.DEVIATION, 12.97, 77.59,
                 timestamp=DAY + timedelta(hours=8, minutes=20), alert_id="d1")
    record_alert(db_session, morning, "alice", AlertType.SOS, 12.97, 77.59,
                 timestamp=DAY + timedelta(hours=8, minutes=40), alert_id="s1")
    record_alert(db_session, morning, "alice", AlertType.STOP, 12.97, 77.59,
                 timestamp=DAY + timedelta(hours=8, minutes=50), alert_id="st1")
    await db_session.commit()

    summary = await build_daily_summary(db_session, "alice", DAY.date())

    assert summary.trip_count == 2
    assert summary.deviation_count == 1
    assert summary.sos_count == 1
    assert summary.last_trip_time.replace(tzinfo=None) == datetime(2026, 3, 1, 18, 0)


@pytest.mark.asyncio
async def test_daily_summary_endpoint_notifies_circle(client, db_session, circle, provider):
    await add_trip(db_session, "t1", 8, 9)

    response = await client.post("/v1/summaries/daily", json={"day": "2026-03-01"}, headers=auth_headers("alice"))

    assert response.status_code == 200
    data = response.json()
    assert data["trip_count"] == 1
    assert data["day"] == "2026-03-01"
    assert data["notified"] is True
    assert data["recipient_count"] == 2
    body = provider.bodies()[0]
    assert "Daily Report for Alice" in body
    assert "1 trip completed" in body
    assert "0 route deviations" in body
    assert "09:00" in body


@pytest.mark.asyncio
async def test_empty_day_summary(client, circle):
    response = await client.post("/v1/summaries/daily", json={"day": "2026-02-01"}, headers=auth_headers("alice"))
    assert response.json()["trip_count"] == 0
    assert response.json()["last_trip_time"] is None


@pytest.mark.asyncio
async def test_retention_purge_keeps_active_trips(client, db_session, circle):
    now = datetime.now(timezone.utc)
    await add_trip(db_session, "t_done", -24 * 40, -24 * 40 + 1, day=now)
    await add_trip(db_session, "t_live", -24 * 40, None, status=TripStatus.ACTIVE, day=now)
    await add_sample(db_session, "old_done", "t_done", now - timedelta(days=40))
    await add_sample(db_session, "new_done", "t_done", now - timedelta(days=2))
    await add_sample(db_session, "old_live", "t_live", now - timedelta(days=40))

    response = await client.post("/v1/ops/retention/purge", json={}, headers=auth_headers("alice"))

    assert response.status_code == 200
    assert response.json() == {"deleted": 1, "older_than_days": 30}

    db_session.expire_all()
    remaining = await db_session.execute(select(LocationSample.id).order_by(LocationSample.id))
    assert remaining.scalars().all() == ["new_done", "old_live"]

    audit = await db_session.execute(select(AuditLog).where(AuditLog.action == AuditAction.SAMPLES_PURGED))
    assert audit.scalar_one().meta_data["deleted"] == 1


@pytest.mark.asyncio
async def test_retention_window_override(client, db_session, circle):
    now = datetime.now(timezone.utc)
    await add_trip(db_session, "t_done", -24 * 10, -24 * 10 + 1, day=now)
    await add_sample(db_session, "s1", "t_done", now - timedelta(days=10))

    response = await client.post(
        "/v1/ops/retention/purge", json={"older_than_days": 7}, headers=auth_headers("alice")
    )

    assert response.json() == {"deleted": 1, "older_than_days": 7}
