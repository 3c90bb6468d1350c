"""
Audit logging service for trip lifecycle and alert state changes.

Audit rows are added to the caller's session; the caller commits them
together with the change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from saferoute.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Trip lifecycle
    TRIP_PLANNED = "TRIP_PLANNED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"

    # Tracking sessions
    TRACKING_STARTED = "TRACKING_STARTED"
    TRACKING_STOPPED = "TRACKING_STOPPED"

    # Alerts
    ALERT_CANCELLED = "ALERT_CANCELLED"
    ALERT_ACKNOWLEDGED = "ALERT_ACKNOWLEDGED"

    # Circles
    CIRCLE_MEMBERSHIP_CLEARED = "CIRCLE_MEMBERSHIP_CLEARED"

    # Routes
    ROUTE_CREATED = "ROUTE_CREATED"
    ROUTE_PATH_ACTIVATED = "ROUTE_PATH_ACTIVATED"

    # Ops
    SAMPLES_PURGED = "SAMPLES_PURGED"


def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    trip_id: Optional[str] = None,
    alert_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an audit event in the current unit of work.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system actions)
        trip_id: Trip the action concerns
        alert_id: Alert the action concerns
        metadata: Additional context as JSON

    Returns:
        The pending AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        trip_id=trip_id,
        alert_id=alert_id,
        meta_data=metadata,
    )
    db.add(audit_log)
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    trip_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if trip_id:
        query = query.where(AuditLog.trip_id == trip_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
