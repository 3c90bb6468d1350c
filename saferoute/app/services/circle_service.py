"""
Safe Circle lookups used by alert delivery.

Membership is managed elsewhere; this module only resolves who should
hear about a user's alerts and repairs a dangling circle pointer.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saferoute.app.models.safe_circle import SafeCircle, CircleMember
from saferoute.app.models.user import User
from saferoute.app.services.audit import log_event, AuditAction

logger = logging.getLogger("saferoute.circles")


async def resolve_circle(db: AsyncSession, user: User) -> Optional[SafeCircle]:
    """
    Return the circle the user belongs to, or None.

    A group_code pointing at a circle that no longer exists is cleared on
    the user row (the caller commits) and treated as "no circle".
    """
    if user is None or not user.group_code:
        return None

    result = await db.execute(
        select(SafeCircle).where(SafeCircle.group_code == user.group_code)
    )
    circle = result.scalar_one_or_none()
    if circle is None:
        logger.warning("User %s points at missing circle %s; clearing", user.id, user.group_code)
        log_event(
            db,
            action=AuditAction.CIRCLE_MEMBERSHIP_CLEARED,
            actor_id=None,
            metadata={"user_id": user.id, "group_code": user.group_code},
        )
        user.group_code = None
        await db.flush()
    return circle


async def get_recipients(db: AsyncSession, group_code: str, exclude_user_id: str) -> List[User]:
    """Every member of the circle except the user who triggered the event."""
    result = await db.execute(
        select(User)
        .join(CircleMember, CircleMember.user_id == User.id)
        .where(
            CircleMember.group_code == group_code,
            User.id != exclude_user_id,
        )
        .order_by(User.id)
    )
    return list(result.scalars().all())


async def can_view(db: AsyncSession, viewer: User, owner_id: str) -> bool:
    """A user sees their own trips and alerts and those of their circle."""
    if viewer.id == owner_id:
        return True
    if not viewer.group_code:
        return False
    result = await db.execute(
        select(CircleMember.id).where(
            CircleMember.group_code == viewer.group_code,
            CircleMember.user_id == owner_id,
        )
    )
    return result.first() is not None
