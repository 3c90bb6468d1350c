"""
Location sample retention.

Breadcrumbs older than the retention window are deleted, except for
trips that are still ACTIVE.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.config import settings
from saferoute.app.models.location_sample import LocationSample
from saferoute.app.models.trip import Trip
from saferoute.app.models.trip_enums import TripStatus
from saferoute.app.services.audit import log_event, AuditAction

logger = logging.getLogger("saferoute.retention")


async def purge_location_samples(db: AsyncSession, older_than_days: int = None, actor_id: str = None) -> int:
    """
    Delete expired location samples.

    Args:
        older_than_days: Retention window, defaults to settings

    Returns:
        Number of samples deleted
    """
    days = older_than_days if older_than_days is not None else settings.location_retention_days
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    active_trips = select(Trip.id).where(Trip.status == TripStatus.ACTIVE)
    result = await db.execute(
        delete(LocationSample)
        .where(LocationSample.timestamp < cutoff, LocationSample.trip_id.not_in(active_trips))
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0

    log_event(
        db, action=AuditAction.SAMPLES_PURGED, actor_id=actor_id,
        metadata={"deleted": deleted, "older_than_days": days, "cutoff": cutoff.isoformat()},
    )
    await db.commit()
    logger.info("Purged %d location samples older than %d days", deleted, days)
    return deleted
