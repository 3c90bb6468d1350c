"""
Location Sample database model.

Stores the GPS breadcrumb trail of an active trip.
"""

from sqlalchemy import Column, String, Float, Boolean, ForeignKey, DateTime, Index
from sqlalchemy.sql import func
from saferoute.app.db.session import Base


class LocationSample(Base):
    """
    Location sample model.

    The primary key is the client-supplied id, so a retried submission
    cannot create a second row.
    """
    __tablename__ = "location_samples"

    id = Column(String(128), primary_key=True)

    # References
    trip_id = Column(String(64), ForeignKey('trips.id'), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)

    # GPS fix
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=False, default=0.0)  # meters
    speed = Column(Float, nullable=False, default=0.0)  # m/s
    heading = Column(Float, nullable=False, default=0.0)  # degrees
    altitude = Column(Float, nullable=False, default=0.0)  # meters
    battery_level = Column(Float, nullable=True)  # percent
    is_moving = Column(Boolean, nullable=False, default=True)

    # Timing
    timestamp = Column(DateTime(timezone=True), nullable=False)  # When GPS was recorded
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)  # When inserted to DB

    __table_args__ = (
        Index('ix_location_samples_trip_time', 'trip_id', 'timestamp'),
        Index('ix_location_samples_user_time', 'user_id', 'timestamp'),
    )

    def __repr__(self):
        return f"<LocationSample(trip_id={self.trip_id}, lat={self.latitude}, lng={self.longitude})>"
