"""
Audit Log Database Model.

Tracks trip lifecycle and alert state changes for later review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from saferoute.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for trip and alert lifecycle events.

    Events logged:
    - TRIP_STARTED / TRIP_COMPLETED / TRIP_CANCELLED
    - TRACKING_STARTED / TRACKING_STOPPED
    - ALERT_CANCELLED / ALERT_ACKNOWLEDGED
    - SAMPLES_PURGED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions such as auto-arrival)
    actor_id = Column(String(64), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    trip_id = Column(String(64), index=True, nullable=True)
    alert_id = Column(String(160), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, trip={self.trip_id})>"
