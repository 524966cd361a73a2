"""
User model - the people acting on the platform.

Users are owned by the account service; this table mirrors the fields the
assessment core needs (role, contact details for notifications, and the
supervisor link used for grading authorization).
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from archetype.database import Base


class User(Base):
    """
    SQLAlchemy model for the users table.

    role is one of candidate | learner | supervisor | admin.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    email = Column(Text, nullable=False, unique=True,
                   doc="Login and notification email")
    full_name = Column(Text, nullable=False,
                       doc="Display name")
    role = Column(String(20), nullable=False, default="learner",
                  doc="candidate | learner | supervisor | admin")
    phone_number = Column(Text, nullable=True,
                          doc="Phone for SMS notifications (optional)")
    supervisor_id = Column(String(36), ForeignKey("users.id"), nullable=True,
                           doc="Supervisor responsible for this user")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="Inactive users are hidden from skill search")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the user was created")

    supervisor = relationship("User", remote_side="User.id", foreign_keys=[supervisor_id])
    attempts = relationship("TestAttempt", back_populates="user",
                            foreign_keys="TestAttempt.user_id")
    enrollments = relationship("Enrollment", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
