"""
Course and Enrollment models.

Courses own tests and map to skills. Enrollments record which users take a
course and when they completed it; completed enrollments feed skill
aggregation.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from archetype.database import Base


class Course(Base):
    """SQLAlchemy model for the courses table."""
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique course identifier")
    title = Column(Text, nullable=False,
                   doc="Course title")
    description = Column(Text, nullable=True,
                         doc="Course summary")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the course was created")

    tests = relationship("Test", back_populates="course", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="course")
    skill_links = relationship("CourseSkill", back_populates="course")

    def __repr__(self):
        return f"<Course(id={self.id}, title='{self.title}')>"


class Enrollment(Base):
    """
    SQLAlchemy model for the enrollments table.

    One row per (user, course). completed_at stays NULL until the user
    finishes the course.
    """
    __tablename__ = "enrollments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique enrollment identifier")
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False,
                     doc="Enrolled user")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False,
                       doc="Course the user is enrolled in")
    enrolled_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                         doc="When the user enrolled")
    completed_at = Column(DateTime, nullable=True,
                          doc="When the user completed the course (NULL while in progress)")

    user = relationship("User", back_populates="enrollments")
    course = relationship("Course", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )

    def __repr__(self):
        return f"<Enrollment(user={self.user_id}, course={self.course_id}, completed={self.completed_at})>"
