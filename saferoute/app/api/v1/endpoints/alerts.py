"""
Alert API Endpoints.

Users raise SOS and check-in alerts, cancel an SOS once they are safe,
and circle members acknowledge alerts they have seen.
"""

from typing import List
from fastapi import APIRouter, Depends, Path, Body, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.dependencies import get_current_user, get_dispatcher
from saferoute.app.core.exceptions import InsufficientPermissionsError
from saferoute.app.db.session import get_db
from saferoute.app.models.user import User
from saferoute.app.schemas.alert import (
    AlertCreate, AlertResponse, AlertCreateResponse, AlertCancelResponse,
    AlertDeliveryResponse, AlertDeliveryListResponse,
)
from saferoute.app.services import alert_service, trip_lifecycle
from saferoute.app.services.circle_service import can_view

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.post("", response_model=AlertCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_alert(
    alert_in: AlertCreate = Body(...),
    current_user: User = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db)
):
    """
    Raise an alert for one of the caller's trips.

    The alert is stored, then sent to every Safe Circle member. Replaying
    a client-supplied id returns the stored alert with created=false and
    sends nothing.
    """
    alert, created = await alert_service.create_alert(
        db,
        dispatcher,
        current_user,
        trip_id=alert_in.trip_id,
        type=alert_in.type,
        latitude=alert_in.latitude,
        longitude=alert_in.longitude,
        timestamp=alert_in.timestamp,
        description=alert_in.description,
        alert_id=alert_in.id,
    )
    return AlertCreateResponse(alert=AlertResponse.model_validate(alert), created=created)


@router.post("/{alert_id}/cancel", response_model=AlertCancelResponse)
async def cancel_alert(
    alert_id: str = Path(..., description="Alert ID"),
    current_user: User = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel an SOS.

    Only SOS alerts can be cancelled, once. The circle gets an all-clear.
    """
    alert, result = await alert_service.cancel_alert(db, dispatcher, alert_id, current_user)
    return AlertCancelResponse(
        alert=AlertResponse.model_validate(alert),
        notified=result.is_sent,
        recipient_count=result.recipient_count,
    )


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str = Path(..., description="Alert ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark an alert as seen."""
    alert = await alert_service.acknowledge_alert(db, alert_id, current_user)
    return AlertResponse.model_validate(alert)


@router.get("/trip/{trip_id}", response_model=List[AlertResponse])
async def list_trip_alerts(
    trip_id: str = Path(..., description="Trip ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    trip = await trip_lifecycle.get_trip(db, trip_id)
    if not await can_view(db, current_user, trip.user_id):
        raise InsufficientPermissionsError("You cannot view this trip")
    alerts = await alert_service.list_trip_alerts(db, trip_id)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.get("/user/{user_id}", response_model=List[AlertResponse])
async def list_user_alerts(
    user_id: str = Path(..., description="User ID"),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Most recent alerts raised by a user, newest first."""
    if not await can_view(db, current_user, user_id):
        raise InsufficientPermissionsError("You cannot view this user's alerts")
    alerts = await alert_service.list_user_alerts(db, user_id, limit=limit)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.get("/{alert_id}/deliveries", response_model=AlertDeliveryListResponse)
async def list_alert_deliveries(
    alert_id: str = Path(..., description="Alert ID"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Per-recipient delivery outcomes of an alert."""
    alert = await alert_service.get_alert(db, alert_id)
    if alert.user_id != current_user.id:
        raise InsufficientPermissionsError("Only the user who raised an alert can see its deliveries")
    deliveries = await alert_service.list_deliveries(db, alert_id)
    return AlertDeliveryListResponse(
        alert_id=alert_id,
        deliveries=[AlertDeliveryResponse.model_validate(d) for d in deliveries],
    )
