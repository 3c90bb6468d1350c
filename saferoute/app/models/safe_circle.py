"""
Safe Circle database models.

Circles and memberships are managed by the circle service; the dispatcher
reads them to find who to notify.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from saferoute.app.db.session import Base


class SafeCircle(Base):
    """A named trusted-contact group identified by a short join code."""
    __tablename__ = "safe_circles"

    group_code = Column(String(16), primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=False, default="")
    creator_id = Column(String(64), ForeignKey('users.id'), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<SafeCircle(group_code={self.group_code}, name='{self.name}')>"


class CircleMember(Base):
    """Membership of a user in a circle."""
    __tablename__ = "circle_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_code = Column(String(16), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey('users.id'), nullable=False, index=True)

    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('group_code', 'user_id', name='uq_circle_members_group_user'),
    )

    def __repr__(self):
        return f"<CircleMember(group_code={self.group_code}, user_id={self.user_id})>"
