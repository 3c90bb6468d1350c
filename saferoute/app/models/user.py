"""
User database model.

Accounts are managed by the profile service; the monitoring engine reads
names and phone numbers for message delivery and keeps the circle pointer.
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from saferoute.app.db.session import Base


class User(Base):
    """
    User model as seen by the monitoring engine.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=True)  # E.164

    # Safe Circle the user currently belongs to (at most one)
    group_code = Column(String(16), index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', group_code={self.group_code})>"
