"""
Daily summary service.

Builds a day's trip and alert counts for a user and sends them to the
user's Safe Circle.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.models.alert import Alert, AlertType
from saferoute.app.models.trip import Trip
from saferoute.app.models.user import User
from saferoute.app.services.dispatcher import AlertDispatcher, DispatchResult
from saferoute.app.services.messages import DailySummaryMessage


@dataclass
class DailySummary:
    user_id: str
    day: date
    trip_count: int
    deviation_count: int
    sos_count: int
    last_trip_time: Optional[datetime]

    def as_dict(self) -> dict:
        return asdict(self)


def day_bounds(day: date):
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def build_daily_summary(db: AsyncSession, user_id: str, day: Optional[date] = None) -> DailySummary:
    day = day or datetime.now(timezone.utc).date()
    start, end = day_bounds(day)

    trips = await db.execute(
        select(Trip.start_time, Trip.end_time)
        .where(Trip.user_id == user_id, Trip.start_time >= start, Trip.start_time < end)
        .order_by(Trip.start_time.desc())
    )
    trip_rows = trips.all()

    alert_counts = await db.execute(
        select(Alert.type, func.count(Alert.id))
        .where(
            Alert.user_id == user_id,
            Alert.timestamp >= start,
            Alert.timestamp < end,
            Alert.type.in_([AlertType.DEVIATION, AlertType.SOS]),
        )
        .group_by(Alert.type)
    )
    counts = {alert_type: count for alert_type, count in alert_counts.all()}

    last_trip_time = None
    if trip_rows:
        latest_start, latest_end = trip_rows[0]
        last_trip_time = latest_end or latest_start

    return DailySummary(
        user_id=user_id,
        day=day,
        trip_count=len(trip_rows),
        deviation_count=counts.get(AlertType.DEVIATION, 0),
        sos_count=counts.get(AlertType.SOS, 0),
        last_trip_time=last_trip_time,
    )


async def send_daily_summary(
    db: AsyncSession,
    dispatcher: AlertDispatcher,
    user: User,
    day: Optional[date] = None,
):
    """
    Build and dispatch the daily summary for ``user``.

    Returns:
        (summary, dispatch result)
    """
    summary = await build_daily_summary(db, user.id, day)
    result: DispatchResult = await dispatcher.dispatch(
        db,
        DailySummaryMessage(
            user_name=user.name,
            trip_count=summary.trip_count,
            deviation_count=summary.deviation_count,
            sos_count=summary.sos_count,
            last_trip_time=summary.last_trip_time,
        ),
        trigger_user=user,
    )
    await db.commit()
    return summary, result
