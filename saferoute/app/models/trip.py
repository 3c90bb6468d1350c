"""
Trip database model.

A trip is started by a traveller and tracked until arrival or cancellation.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, DateTime, Enum, JSON, Text, Index, text
from sqlalchemy.sql import func
from saferoute.app.db.session import Base
from saferoute.app.models.trip_enums import TripStatus


class Trip(Base):
    """
    Trip model.

    Counters (deviation/stop/alert) only grow, and only while ACTIVE.
    The live snapshot columns are flushed from the in-memory tracking session.
    """
    __tablename__ = "trips"

    id = Column(String(64), primary_key=True, index=True)

    # Ownership
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)

    # Endpoints
    source_latitude = Column(Float, nullable=False)
    source_longitude = Column(Float, nullable=False)
    destination_latitude = Column(Float, nullable=False)
    destination_longitude = Column(Float, nullable=False)
    source_address = Column(String(500), nullable=False)
    destination_address = Column(String(500), nullable=False)

    # Route geometry (encoded polyline wire format)
    route_polyline = Column(Text, nullable=False, default="")
    alternative_polylines = Column(JSON, nullable=False, default=list)
    active_route_index = Column(Integer, nullable=False, default=0)
    route_id = Column(String(64), ForeignKey('routes.id'), nullable=True)
    estimated_duration = Column(Float, nullable=True)  # seconds
    estimated_distance = Column(Float, nullable=True)  # meters

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.PLANNED, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    # Counters
    deviation_count = Column(Integer, default=0, nullable=False)
    stop_count = Column(Integer, default=0, nullable=False)
    alert_count = Column(Integer, default=0, nullable=False)

    # Live tracking snapshot
    last_latitude = Column(Float, nullable=True)
    last_longitude = Column(Float, nullable=True)
    last_location_time = Column(DateTime(timezone=True), nullable=True)
    route_progress_index = Column(Integer, default=0, nullable=False)
    is_deviated = Column(Boolean, default=False, nullable=False)
    has_joined_route = Column(Boolean, default=False, nullable=False)
    distance_from_route = Column(Float, nullable=True)
    last_notification_sent = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Only one ACTIVE trip per user
    __table_args__ = (
        Index('ix_trips_one_active_per_user', 'user_id', unique=True,
              postgresql_where=text("status = 'ACTIVE'"),
              sqlite_where=text("status = 'ACTIVE'")),
    )

    def __repr__(self):
        return f"<Trip(id={self.id}, user_id={self.user_id}, status='{self.status.value}')>"
