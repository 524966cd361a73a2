"""
Skill models - the skill catalogue, course-to-skill weights and the
per-user skill levels derived from them.
"""

import uuid
from sqlalchemy import Column, Text, Integer, Float, DateTime, ForeignKey, String, CheckConstraint
from sqlalchemy.orm import relationship
from archetype.database import Base


class Skill(Base):
    """SQLAlchemy model for the skills table."""
    __tablename__ = "skills"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique skill identifier")
    name = Column(Text, nullable=False, unique=True,
                  doc="Skill name (unique)")
    description = Column(Text, nullable=True,
                         doc="What the skill covers")

    course_links = relationship("CourseSkill", back_populates="skill")

    def __repr__(self):
        return f"<Skill(id={self.id}, name='{self.name}')>"


class CourseSkill(Base):
    """
    SQLAlchemy model for the course_skills table.

    Composite primary key (course_id, skill_id); weight in [0, 1].
    """
    __tablename__ = "course_skills"

    course_id = Column(String(36), ForeignKey("courses.id"), primary_key=True,
                       doc="Course contributing to the skill")
    skill_id = Column(String(36), ForeignKey("skills.id"), primary_key=True,
                      doc="Skill the course contributes to")
    weight = Column(Float, nullable=False, default=1.0,
                    doc="How strongly the course contributes (0-1)")

    course = relationship("Course", back_populates="skill_links")
    skill = relationship("Skill", back_populates="course_links")

    __table_args__ = (
        CheckConstraint("weight >= 0 AND weight <= 1", name="ck_course_skills_weight"),
    )

    def __repr__(self):
        return f"<CourseSkill(course={self.course_id}, skill={self.skill_id}, weight={self.weight})>"


class UserSkill(Base):
    """
    SQLAlchemy model for the user_skills table.

    One row per (user, skill), overwritten wholesale on every recalculation.
    """
    __tablename__ = "user_skills"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True,
                     doc="User the level belongs to")
    skill_id = Column(String(36), ForeignKey("skills.id"), primary_key=True,
                      doc="Skill being measured")
    level = Column(Float, nullable=False, default=0,
                   doc="Derived level, 0-5")
    courses_completed = Column(Integer, nullable=True,
                               doc="Completed courses contributing to the skill")
    test_average = Column(Float, nullable=True,
                          doc="Mean graded test score over those courses (0-100)")
    supervisor_rating = Column(Float, nullable=True,
                               doc="Supervisor rating used in the calculation (0-5)")
    last_calculated = Column(DateTime, nullable=True,
                             doc="When the level was last recalculated")

    skill = relationship("Skill")

    __table_args__ = (
        CheckConstraint("level >= 0 AND level <= 5", name="ck_user_skills_level"),
    )

    def __repr__(self):
        return f"<UserSkill(user={self.user_id}, skill={self.skill_id}, level={self.level})>"
