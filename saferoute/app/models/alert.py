"""
Alert Database Model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Float, Enum, Index
from sqlalchemy.sql import func
from saferoute.app.db.session import Base
import enum


class AlertType(str, enum.Enum):
    SOS = "SOS"
    DEVIATION = "DEVIATION"
    STOP = "STOP"
    TRIP_COMPLETE = "TRIP_COMPLETE"
    # Informational
    LOW_BATTERY = "LOW_BATTERY"
    CHECK_IN = "CHECK_IN"


CANCELLABLE_ALERT_TYPES = frozenset({AlertType.SOS})


class Alert(Base):
    """
    Safety alert raised for a trip.

    Only SOS alerts may be cancelled after creation; every other type is
    write-once apart from the delivery and acknowledgement flags.
    """
    __tablename__ = "alerts"

    # Room for "<sample id>:<type>" on a maximum-length sample id
    id = Column(String(160), primary_key=True)

    trip_id = Column(String(64), ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)

    type = Column(Enum(AlertType), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=True)

    # Delivery outcome
    is_sent = Column(Boolean, default=False, nullable=False)
    recipient_count = Column(Integer, default=0, nullable=False)
    delivered_count = Column(Integer, default=0, nullable=False)

    # State
    is_acknowledged = Column(Boolean, default=False, nullable=False)
    is_cancelled = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_alerts_user_time', 'user_id', 'timestamp'),
        Index('ix_alerts_trip_time', 'trip_id', 'timestamp'),
        Index('ix_alerts_type_cancelled', 'type', 'is_cancelled'),
    )

    def __repr__(self):
        return f"<Alert(id={self.id}, trip={self.trip_id}, type='{self.type.value}')>"
