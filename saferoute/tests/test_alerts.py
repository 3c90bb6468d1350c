"""
Alert API tests: raising, idempotent replay, cancellation rules,
acknowledgement, listings and delivery records.
"""

import pytest
from sqlalchemy import select, func

from saferoute.app.models.alert import Alert
from saferoute.app.models.trip import Trip
from saferoute.app.models.audit_log import AuditLog
from saferoute.app.services.audit import AuditAction
from saferoute.app.services.messaging import Channel
from saferoute.tests.factories import auth_headers, make_user, trip_payload


def alert_payload(alert_id=None, type="SOS", **extra):
    payload = {"trip_id": "trip_a", "type": type, "latitude": 12.98, "longitude": 77.59}
    if alert_id:
        payload["id"] = alert_id
    payload.update(extra)
    return payload


async def start_trip(client):
    await client.post("/v1/trips/start", json=trip_payload(id="trip_a"), headers=auth_headers("alice"))


@pytest.mark.asyncio
async def test_sos_is_sent_to_circle(client, circle, provider, db_session):
    await start_trip(client)
    provider.sent.clear()

    response = await client.post(
        "/v1/alerts", json=alert_payload("sos_1", description="Followed by a car"), headers=auth_headers("alice")
    )

    assert response.status_code == 201
    data = response.json()
    assert data["created"] is True
    assert data["alert"]["id"] == "sos_1"
    assert data["alert"]["is_sent"] is True
    assert data["alert"]["recipient_count"] == 2
    assert data["alert"]["delivered_count"] == 2
    assert len(provider.sent) == 2
    body = provider.bodies()[0]
    assert "EMERGENCY SOS ALERT" in body
    assert "https://maps.google.com/?q=12.98,77.59" in body
    assert "Followed by a car" in body

    trip = await db_session.get(Trip, "trip_a")
    assert trip.alert_count == 1


@pytest.mark.asyncio
async def test_replayed_alert_id_is_not_sent_twice(client, circle, provider):
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=headers)
    provider.sent.clear()

    replay = await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=headers)

    assert replay.status_code == 201
    assert replay.json()["created"] is False
    assert replay.json()["alert"]["is_sent"] is True
    assert provider.sent == []


@pytest.mark.asyncio
async def test_alert_without_circle_is_stored_unsent(client, db_session):
    await make_user(db_session, "dave")
    await client.post("/v1/trips/start", json=trip_payload(id="trip_d"), headers=auth_headers("dave"))

    response = await client.post(
        "/v1/alerts", json=alert_payload(trip_id="trip_d", type="CHECK_IN"), headers=auth_headers("dave")
    )

    assert response.status_code == 201
    assert response.json()["alert"]["is_sent"] is False
    assert response.json()["alert"]["recipient_count"] == 0


@pytest.mark.asyncio
async def test_alert_for_unknown_or_foreign_trip(client, circle):
    await start_trip(client)

    unknown = await client.post("/v1/alerts", json=alert_payload(trip_id="nope"), headers=auth_headers("alice"))
    assert unknown.status_code == 404

    foreign = await client.post("/v1/alerts", json=alert_payload(), headers=auth_headers("bob"))
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_invalid_alert_type_is_rejected(client, circle):
    await start_trip(client)
    response = await client.post("/v1/alerts", json=alert_payload(type="PANIC"), headers=auth_headers("alice"))
    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("alert_type", ["DEVIATION", "STOP", "TRIP_COMPLETE", "LOW_BATTERY"])
async def test_tracking_alert_types_cannot_be_posted(client, circle, db_session, alert_type):
    await start_trip(client)

    response = await client.post("/v1/alerts", json=alert_payload(type=alert_type), headers=auth_headers("alice"))

    assert response.status_code == 422
    count = await db_session.execute(select(func.count()).select_from(Alert))
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_cancel_sos_sends_all_clear(client, circle, provider, redis_client_session, db_session):
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=headers)
    provider.sent.clear()

    response = await client.post("/v1/alerts/sos_1/cancel", headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["alert"]["is_cancelled"] is True
    assert data["notified"] is True
    assert data["recipient_count"] == 2
    assert all("is safe" in body for body in provider.bodies())
    assert "alert_cancelled" in redis_client_session.events("circle:FAM001")

    audit = await db_session.execute(select(AuditLog).where(AuditLog.action == AuditAction.ALERT_CANCELLED))
    assert audit.scalar_one().alert_id == "sos_1"


@pytest.mark.asyncio
async def test_cancelling_twice_is_rejected(client, circle):
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=headers)
    await client.post("/v1/alerts/sos_1/cancel", headers=headers)

    again = await client.post("/v1/alerts/sos_1/cancel", headers=headers)

    assert again.status_code == 409
    assert again.json()["message"] == "Alert already cancelled"


@pytest.mark.asyncio
async def test_only_sos_can_be_cancelled(client, circle):
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("chk_1", type="CHECK_IN"), headers=headers)

    response = await client.post("/v1/alerts/chk_1/cancel", headers=headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Only SOS alerts can be cancelled"


@pytest.mark.asyncio
async def test_only_the_raiser_cancels(client, circle):
    await start_trip(client)
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=auth_headers("alice"))

    response = await client.post("/v1/alerts/sos_1/cancel", headers=auth_headers("bob"))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_circle_member_acknowledges(client, circle):
    await start_trip(client)
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=auth_headers("alice"))

    response = await client.post("/v1/alerts/sos_1/acknowledge", headers=auth_headers("bob"))

    assert response.status_code == 200
    assert response.json()["is_acknowledged"] is True

    missing = await client.post("/v1/alerts/nope/acknowledge", headers=auth_headers("bob"))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_alert_listings(client, circle, db_session):
    await make_user(db_session, "dave")
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("a1", timestamp="2026-03-01T08:00:00Z"), headers=headers)
    await client.post(
        "/v1/alerts", json=alert_payload("a2", type="CHECK_IN", timestamp="2026-03-01T09:00:00Z"), headers=headers
    )

    by_trip = await client.get("/v1/alerts/trip/trip_a", headers=auth_headers("bob"))
    assert [a["id"] for a in by_trip.json()] == ["a2", "a1"]

    by_user = await client.get("/v1/alerts/user/alice", params={"limit": 1}, headers=auth_headers("carol"))
    assert [a["id"] for a in by_user.json()] == ["a2"]

    outsider = await client.get("/v1/alerts/user/alice", headers=auth_headers("dave"))
    assert outsider.status_code == 403


@pytest.mark.asyncio
async def test_delivery_records(client, circle, provider):
    provider.fail(Channel.WHATSAPP, retryable=False)
    await start_trip(client)
    headers = auth_headers("alice")
    await client.post("/v1/alerts", json=alert_payload("sos_1"), headers=headers)

    response = await client.get("/v1/alerts/sos_1/deliveries", headers=headers)

    assert response.status_code == 200
    deliveries = response.json()["deliveries"]
    assert sorted(d["recipient_user_id"] for d in deliveries) == ["bob", "carol"]
    assert all(d["success"] and d["channel"] == "SMS" and d["fell_back"] for d in deliveries)
    assert all(d["message_kind"] == "SOS" for d in deliveries)

    forbidden = await client.get("/v1/alerts/sos_1/deliveries", headers=auth_headers("bob"))
    assert forbidden.status_code == 403
