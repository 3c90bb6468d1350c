"""
Alert Delivery Model.

One row per recipient per dispatched message. This is the only place
partial fan-out failures become visible.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.sql import func
from saferoute.app.db.session import Base


class AlertDelivery(Base):
    """
    Per-recipient delivery outcome.
    Periodic status updates and summaries have no alert row, so alert_id may be null.
    """
    __tablename__ = "alert_deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    alert_id = Column(String(160), nullable=True, index=True)
    trip_id = Column(String(64), nullable=True, index=True)
    message_kind = Column(String(32), nullable=False)

    recipient_user_id = Column(String(64), nullable=False)
    channel = Column(String(16), nullable=True)  # channel that delivered, or last attempted
    success = Column(Boolean, default=False, nullable=False)
    fell_back = Column(Boolean, default=False, nullable=False)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AlertDelivery(alert={self.alert_id}, to={self.recipient_user_id}, success={self.success})>"
