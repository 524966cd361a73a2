"""
Notification model - in-app messages shown in a user's inbox.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Boolean, Index
from archetype.database import Base


class Notification(Base):
    """SQLAlchemy model for the notifications table."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique notification identifier")
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False,
                     doc="Recipient")
    title = Column(Text, nullable=False,
                   doc="Short headline")
    message = Column(Text, nullable=False,
                     doc="Notification body")
    notification_type = Column(String(40), nullable=False,
                               doc="test_result | test_submitted | flag")
    is_read = Column(Boolean, nullable=False, default=False,
                     doc="Whether the recipient has opened it")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When the notification was created")

    __table_args__ = (
        Index("ix_notifications_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type='{self.notification_type}')>"
