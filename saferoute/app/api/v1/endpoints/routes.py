"""
Saved route API Endpoints.

A route holds one or more paths; the active path is what a trip follows
when it is started with the route's id.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Body, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.route import RouteCreate, RouteResponse, RoutePathResponse, RoutePolylineResponse
from saferoute.app.services import route_service

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    route_in: RouteCreate = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Save a route with its paths.

    Validates:
    - Each path starts at its only SOURCE point and ends at its only
      DESTINATION point
    - Point order values are unique within a path
    - At most one path is flagged active (the first path is used otherwise)
    """
    route = await route_service.create_route(db, current_user.id, route_in.model_dump())
    return RouteResponse.model_validate(await route_service.route_detail(db, route))


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: str = Path(..., description="Route ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    route = await route_service.get_owned_route(db, route_id, current_user.id)
    return RouteResponse.model_validate(await route_service.route_detail(db, route))


@router.post("/{route_id}/paths/{path_id}/activate", response_model=RoutePathResponse)
async def activate_path(
    route_id: str = Path(..., description="Route ID"),
    path_id: str = Path(..., description="Path ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Make a path the route's active path; the others are deactivated."""
    route = await route_service.get_owned_route(db, route_id, current_user.id)
    path = await route_service.activate_path(db, route, path_id, current_user.id)
    points = await route_service.get_points(db, path.id)
    return RoutePathResponse.model_validate({
        "id": path.id,
        "name": path.name,
        "description": path.description,
        "is_active": True,
        "points": points,
    })


@router.get("/{route_id}/polyline", response_model=RoutePolylineResponse)
async def get_route_polyline(
    route_id: str = Path(..., description="Route ID"),
    path_id: Optional[str] = Query(None, description="Defaults to the active path"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Encoded polyline of a route path."""
    route = await route_service.get_owned_route(db, route_id, current_user.id)
    encoded = await route_service.encoded_path(db, route, path_id)
    return RoutePolylineResponse(route_id=route.id, path_id=path_id, polyline=encoded)
