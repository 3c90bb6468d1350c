"""
Saved route service.

Routes are stored as ordered points per path; whenever a path has to
travel (to a trip, or to a client) it is re-encoded as a polyline.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.exceptions import ResourceNotFoundError, InsufficientPermissionsError, ValidationError
from saferoute.app.models.route import Route, RoutePath, RoutePathPoint
from saferoute.app.models.route_enums import PathPointRole
from saferoute.app.services import polyline
from saferoute.app.services.audit import log_event, AuditAction


def _check_points(path_name: str, points: List[dict]) -> List[dict]:
    """
    Validate and order the points of one path.

    The lowest order must be the only SOURCE and the highest the only
    DESTINATION.
    """
    if len(points) < 2:
        raise ValidationError(f"Path '{path_name}' needs at least a source and a destination")

    ordered = sorted(points, key=lambda p: p["order"])
    orders = [p["order"] for p in ordered]
    if len(set(orders)) != len(orders):
        raise ValidationError(f"Path '{path_name}' has duplicate point order values")

    roles = [PathPointRole(p.get("role") or PathPointRole.WAYPOINT) for p in ordered]
    if roles[0] != PathPointRole.SOURCE or roles.count(PathPointRole.SOURCE) != 1:
        raise ValidationError(f"Path '{path_name}' must start with its only SOURCE point")
    if roles[-1] != PathPointRole.DESTINATION or roles.count(PathPointRole.DESTINATION) != 1:
        raise ValidationError(f"Path '{path_name}' must end with its only DESTINATION point")
    return ordered


async def create_route(db: AsyncSession, user_id: str, data: dict) -> Route:
    """
    Create a route with its paths and points.

    When no path is flagged active the first one becomes active; flagging
    more than one is rejected.
    """
    paths = data.get("paths") or []
    if not paths:
        raise ValidationError("A route needs at least one path")
    active_flags = [bool(p.get("is_active")) for p in paths]
    if sum(active_flags) > 1:
        raise ValidationError("Only one path per route can be active")
    if not any(active_flags):
        active_flags[0] = True

    route_id = data.get("id") or f"route_{uuid.uuid4().hex}"
    if await db.get(Route, route_id) is not None:
        raise ValidationError("Route id already exists", details={"id": route_id})

    route = Route(
        id=route_id,
        user_id=user_id,
        name=data["name"],
        description=data.get("description") or "",
        source_latitude=data["source_latitude"],
        source_longitude=data["source_longitude"],
        source_address=data.get("source_address") or "",
        destination_latitude=data["destination_latitude"],
        destination_longitude=data["destination_longitude"],
        destination_address=data.get("destination_address") or "",
        is_active=True,
    )
    db.add(route)
    await db.flush()

    for path_data, is_active in zip(paths, active_flags):
        points = _check_points(path_data["name"], path_data.get("points") or [])
        path = RoutePath(
            id=path_data.get("id") or f"path_{uuid.uuid4().hex}",
            route_id=route.id,
            name=path_data["name"],
            description=path_data.get("description") or "",
            is_active=is_active,
        )
        db.add(path)
        await db.flush()
        for point in points:
            db.add(RoutePathPoint(
                path_id=path.id,
                latitude=point["latitude"],
                longitude=point["longitude"],
                order=point["order"],
                role=PathPointRole(point.get("role") or PathPointRole.WAYPOINT),
            ))

    log_event(db, action=AuditAction.ROUTE_CREATED, actor_id=user_id, metadata={"route_id": route.id})
    await db.commit()
    await db.refresh(route)
    return route


async def get_route(db: AsyncSession, route_id: str) -> Route:
    route = await db.get(Route, route_id)
    if route is None:
        raise ResourceNotFoundError("Route", route_id)
    return route


async def get_owned_route(db: AsyncSession, route_id: str, user_id: str) -> Route:
    route = await get_route(db, route_id)
    if route.user_id != user_id:
        raise InsufficientPermissionsError("This route does not belong to you")
    return route


async def get_paths(db: AsyncSession, route_id: str) -> List[RoutePath]:
    result = await db.execute(
        select(RoutePath).where(RoutePath.route_id == route_id).order_by(RoutePath.created_at, RoutePath.id)
    )
    return list(result.scalars().all())


async def get_points(db: AsyncSession, path_id: str) -> List[RoutePathPoint]:
    result = await db.execute(
        select(RoutePathPoint).where(RoutePathPoint.path_id == path_id).order_by(RoutePathPoint.order)
    )
    return list(result.scalars().all())


async def route_detail(db: AsyncSession, route: Route) -> dict:
    """Route with its paths and ordered points, ready for the response schema."""
    paths = []
    for path in await get_paths(db, route.id):
        paths.append({
            "id": path.id,
            "name": path.name,
            "description": path.description,
            "is_active": path.is_active,
            "points": await get_points(db, path.id),
        })
    return {
        "id": route.id,
        "user_id": route.user_id,
        "name": route.name,
        "description": route.description,
        "source_latitude": route.source_latitude,
        "source_longitude": route.source_longitude,
        "source_address": route.source_address,
        "destination_latitude": route.destination_latitude,
        "destination_longitude": route.destination_longitude,
        "destination_address": route.destination_address,
        "is_active": route.is_active,
        "created_at": route.created_at,
        "paths": paths,
    }


async def activate_path(db: AsyncSession, route: Route, path_id: str, user_id: str) -> RoutePath:
    """Make one path the route's active path."""
    path = await db.get(RoutePath, path_id)
    if path is None or path.route_id != route.id:
        raise ResourceNotFoundError("Route path", path_id)

    await db.execute(
        update(RoutePath)
        .where(RoutePath.route_id == route.id, RoutePath.id != path_id)
        .values(is_active=False)
    )
    path.is_active = True
    log_event(
        db, action=AuditAction.ROUTE_PATH_ACTIVATED, actor_id=user_id,
        metadata={"route_id": route.id, "path_id": path_id},
    )
    await db.commit()
    return path


async def encoded_path(db: AsyncSession, route: Route, path_id: Optional[str] = None) -> str:
    """
    Encode a path of the route, the active one by default.

    Returns:
        Encoded polyline ("" when the route has no matching path)
    """
    query = select(RoutePath).where(RoutePath.route_id == route.id)
    if path_id:
        query = query.where(RoutePath.id == path_id)
    else:
        query = query.where(RoutePath.is_active == True)  # noqa: E712
    result = await db.execute(query.limit(1))
    path = result.scalar_one_or_none()
    if path is None:
        if path_id:
            raise ResourceNotFoundError("Route path", path_id)
        return ""
    points = await get_points(db, path.id)
    return polyline.encode((p.latitude, p.longitude) for p in points)
