"""
Saved Route database models.

A traveller saves a route between two places with one or more named
paths; the active path is what trips planned from the route follow.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, Index, UniqueConstraint
from sqlalchemy.sql import func
from saferoute.app.db.session import Base
from saferoute.app.models.route_enums import PathPointRole


class Route(Base):
    """
    Saved route model.
    """
    __tablename__ = "routes"

    id = Column(String(64), primary_key=True, index=True)

    # Ownership
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=False, default="")

    # Origin location
    source_latitude = Column(Float, nullable=False)
    source_longitude = Column(Float, nullable=False)
    source_address = Column(String(500), nullable=False, default="")

    # Destination location
    destination_latitude = Column(Float, nullable=False)
    destination_longitude = Column(Float, nullable=False)
    destination_address = Column(String(500), nullable=False, default="")

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Route(id={self.id}, name='{self.name}', user_id={self.user_id})>"


class RoutePath(Base):
    """
    A named alternative way of travelling a route.
    At most one path per route has is_active set.
    """
    __tablename__ = "route_paths"

    id = Column(String(64), primary_key=True)
    route_id = Column(String(64), ForeignKey('routes.id'), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=False, default="")
    is_active = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<RoutePath(id={self.id}, route_id={self.route_id}, active={self.is_active})>"


class RoutePathPoint(Base):
    """Ordered point of a path."""
    __tablename__ = "route_path_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    path_id = Column(String(64), ForeignKey('route_paths.id'), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    order = Column(Integer, nullable=False)
    role = Column(Enum(PathPointRole), default=PathPointRole.WAYPOINT, nullable=False)

    __table_args__ = (
        UniqueConstraint('path_id', 'order', name='uq_route_path_points_order'),
        Index('ix_route_path_points_path_order', 'path_id', 'order'),
    )

    def __repr__(self):
        return f"<RoutePathPoint(path_id={self.path_id}, order={self.order}, role='{self.role.value}')>"
