"""
Saved route tests: validation, active path selection and polyline
transport into trips.
"""

import pytest
from saferoute.app.services import polyline
from saferoute.tests.factories import auth_headers, along, trip_payload

DIRECT = [along(0), along(2500), along(5000)]
DETOUR = [along(0), along(1500, east=800), along(3500, east=800), along(5000)]


def points(path):
    last = len(path) - 1
    return [
        {
            "latitude": p.latitude,
            "longitude": p.longitude,
            "order": i * 10,
            "role": "SOURCE" if i == 0 else "DESTINATION" if i == last else "WAYPOINT",
        }
        for i, p in enumerate(path)
    ]


def route_payload(**overrides):
    payload = {
        "id": "route_commute",
        "name": "Commute",
        "source_latitude": DIRECT[0].latitude,
        "source_longitude": DIRECT[0].longitude,
        "source_address": "Home",
        "destination_latitude": DIRECT[-1].latitude,
        "destination_longitude": DIRECT[-1].longitude,
        "destination_address": "Office",
        "paths": [
            {"id": "path_direct", "name": "Direct", "points": points(DIRECT)},
            {"id": "path_detour", "name": "Park detour", "points": points(DETOUR)},
        ],
    }
    payload.update(overrides)
    return payload


def encoded(path):
    return polyline.encode((p.latitude, p.longitude) for p in path)


@pytest.mark.asyncio
async def test_create_route_activates_first_path(client, circle):
    response = await client.post("/v1/routes", json=route_payload(), headers=auth_headers("alice"))

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "route_commute"
    assert [(p["id"], p["is_active"]) for p in data["paths"]] == [("path_direct", True), ("path_detour", False)]
    assert [pt["role"] for pt in data["paths"][1]["points"]] == ["SOURCE", "WAYPOINT", "WAYPOINT", "DESTINATION"]


@pytest.mark.asyncio
async def test_points_are_stored_in_order(client, circle):
    payload = route_payload()
    payload["paths"][0]["points"] = list(reversed(points(DIRECT)))

    response = await client.post("/v1/routes", json=payload, headers=auth_headers("alice"))

    assert [pt["order"] for pt in response.json()["paths"][0]["points"]] == [0, 10, 20]


@pytest.mark.asyncio
@pytest.mark.parametrize("mutate", [
    lambda p: p["paths"][0]["points"][0].update(role="WAYPOINT"),
    lambda p: p["paths"][0]["points"][-1].update(role="WAYPOINT"),
    lambda p: p["paths"][0]["points"][1].update(role="SOURCE"),
    lambda p: p["paths"][0]["points"][1].update(order=0),
    lambda p: [path.update(is_active=True) for path in p["paths"]],
])
async def test_invalid_routes_are_rejected(client, circle, mutate):
    payload = route_payload()
    mutate(payload)

    response = await client.post("/v1/routes", json=payload, headers=auth_headers("alice"))

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_single_point_path_is_rejected(client, circle):
    payload = route_payload()
    payload["paths"][0]["points"] = points(DIRECT)[:1]
    response = await client.post("/v1/routes", json=payload, headers=auth_headers("alice"))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_activate_path_switches_polyline(client, circle):
    headers = auth_headers("alice")
    await client.post("/v1/routes", json=route_payload(), headers=headers)

    before = await client.get("/v1/routes/route_commute/polyline", headers=headers)
    assert before.json()["polyline"] == encoded(DIRECT)

    activated = await client.post("/v1/routes/route_commute/paths/path_detour/activate", headers=headers)
    assert activated.status_code == 200
    assert activated.json()["is_active"] is True

    route = await client.get("/v1/routes/route_commute", headers=headers)
    assert [(p["id"], p["is_active"]) for p in route.json()["paths"]] == [
        ("path_direct", False), ("path_detour", True),
    ]

    after = await client.get("/v1/routes/route_commute/polyline", headers=headers)
    assert after.json()["polyline"] == encoded(DETOUR)

    explicit = await client.get(
        "/v1/routes/route_commute/polyline", params={"path_id": "path_direct"}, headers=headers
    )
    assert explicit.json()["polyline"] == encoded(DIRECT)


@pytest.mark.asyncio
async def test_unknown_path_or_route(client, circle):
    headers = auth_headers("alice")
    await client.post("/v1/routes", json=route_payload(), headers=headers)

    missing_path = await client.post("/v1/routes/route_commute/paths/nope/activate", headers=headers)
    assert missing_path.status_code == 404

    missing_route = await client.get("/v1/routes/nope", headers=headers)
    assert missing_route.status_code == 404

    foreign = await client.get("/v1/routes/route_commute", headers=auth_headers("bob"))
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_trip_follows_saved_route(client, circle, tracking):
    headers = auth_headers("alice")
    await client.post("/v1/routes", json=route_payload(), headers=headers)
    await client.post("/v1/routes/route_commute/paths/path_detour/activate", headers=headers)

    response = await client.post(
        "/v1/trips/start",
        json=trip_payload(id="trip_r", route_polyline=None, route_id="route_commute"),
        headers=headers,
    )

    assert response.status_code == 201
    trip = response.json()["trip"]
    assert trip["route_id"] == "route_commute"
    assert trip["route_polyline"] == encoded(DETOUR)
    assert len(tracking.registry.get("trip_r").path) == 4
