"""
Daily summary API Endpoints.
"""

from fastapi import APIRouter, Depends, Body
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user, get_dispatcher
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.summary import DailySummaryRequest, DailySummaryResponse
from saferoute.app.services import summary_service

router = APIRouter(prefix="/summaries", tags=["Summaries"])


@router.post("/daily", response_model=DailySummaryResponse)
async def send_daily_summary(
    request: DailySummaryRequest = Body(DailySummaryRequest()),
    current_user: User = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db)
):
    """
    Send the caller's daily summary to their Safe Circle.

    Counts trips, deviation alerts and SOS alerts for the UTC day.
    """
    summary, result = await summary_service.send_daily_summary(db, dispatcher, current_user, request.day)
    return DailySummaryResponse(
        **summary.as_dict(),
        notified=result.is_sent,
        recipient_count=result.recipient_count,
    )
