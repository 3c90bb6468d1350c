"""
Realtime circle WebSocket.

Circle members join the room of their Safe Circle and receive
``location_update``, ``alert`` and ``alert_cancelled`` events as JSON.
Browsers cannot send an Authorization header on a WebSocket, so the
bearer token travels in the ``token`` query parameter.
"""

import asyncio
import logging
from fastapi import APIRouter, Depends, Path, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.core.jwt import subject_from_token
from saferoute.app.db.session import get_db
from saferoute.app.models.safe_circle import CircleMember

router = APIRouter(prefix="/realtime", tags=["Realtime"])
logger = logging.getLogger("saferoute.realtime")


async def _is_member(db: AsyncSession, group_code: str, user_id: str) -> bool:
    result = await db.execute(
        select(CircleMember.id).where(
            CircleMember.group_code == group_code,
            CircleMember.user_id == user_id,
        )
    )
    return result.first() is not None


@router.websocket("/circles/{group_code}")
async def circle_room(
    websocket: WebSocket,
    group_code: str = Path(..., description="Safe Circle code"),
    token: str = Query(..., description="Bearer token"),
    db: AsyncSession = Depends(get_db)
):
    """
    Join a circle room.

    Connections without a valid token, or from users outside the circle,
    are closed with 1008 (policy violation).
    """
    user_id = subject_from_token(token)
    if not user_id or not await _is_member(db, group_code, user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    broadcaster = websocket.app.state.tracking.broadcaster
    relay = asyncio.create_task(broadcaster.relay(group_code, websocket.send_text))
    logger.info("User %s joined circle room %s", user_id, group_code)

    try:
        # Clients only listen; anything they send is ignored
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        relay.cancel()
        await asyncio.gather(relay, return_exceptions=True)
        logger.info("User %s left circle room %s", user_id, group_code)
