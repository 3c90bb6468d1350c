"""
Saved route schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from saferoute.app.models.route_enums import PathPointRole


class PathPointIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    order: int = Field(..., ge=0)
    role: PathPointRole = PathPointRole.WAYPOINT


class RoutePathIn(BaseModel):
    id: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=500)
    is_active: bool = False
    points: List[PathPointIn] = Field(..., min_length=2)


class RouteCreate(BaseModel):
    """Schema for saving a route with its paths."""
    id: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=500)
    source_latitude: float = Field(..., ge=-90, le=90)
    source_longitude: float = Field(..., ge=-180, le=180)
    source_address: str = Field("", max_length=500)
    destination_latitude: float = Field(..., ge=-90, le=90)
    destination_longitude: float = Field(..., ge=-180, le=180)
    destination_address: str = Field("", max_length=500)
    paths: List[RoutePathIn] = Field(..., min_length=1)


class PathPointResponse(BaseModel):
    latitude: float
    longitude: float
    order: int
    role: PathPointRole

    class Config:
        from_attributes = True


class RoutePathResponse(BaseModel):
    id: str
    name: str
    description: str
    is_active: bool
    points: List[PathPointResponse]


class RouteResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    source_latitude: float
    source_longitude: float
    source_address: str
    destination_latitude: float
    destination_longitude: float
    destination_address: str
    is_active: bool
    created_at: Optional[datetime]
    paths: List[RoutePathResponse]


class RoutePolylineResponse(BaseModel):
    route_id: str
    path_id: Optional[str]
    polyline: str
