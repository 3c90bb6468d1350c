"""
Operational API Endpoints.
"""

from fastapi import APIRouter, Depends, Body
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.config import settings
from saferoute.app.core.dependencies import get_current_user
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.summary import RetentionPurgeRequest, RetentionPurgeResponse
from saferoute.app.services.retention import purge_location_samples

router = APIRouter(prefix="/ops", tags=["Operations"])


@router.post("/retention/purge", response_model=RetentionPurgeResponse)
async def purge_expired_samples(
    request: RetentionPurgeRequest = Body(RetentionPurgeRequest()),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete location samples past the retention window.

    Samples of ACTIVE trips are always kept.
    """
    days = request.older_than_days if request.older_than_days is not None else settings.location_retention_days
    deleted = await purge_location_samples(db, older_than_days=days, actor_id=current_user.id)
    return RetentionPurgeResponse(deleted=deleted, older_than_days=days)
