"""
Test definition models - a test and its ordered question/option tree.

A test belongs to a course. Questions are ordered by order_index (their
position in the creation payload) and, for multiple choice, carry an
ordered list of options with exactly one meant to be correct.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Integer, DateTime, String, Boolean, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from archetype.database import Base

TEST_TYPES = ("multiple_choice", "written", "coding")


class Test(Base):
    """
    SQLAlchemy model for the tests table.

    max_attempts NULL means the platform default applies.
    """
    __tablename__ = "tests"
    __test__ = False  # not a pytest test class

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique test identifier")
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False,
                       doc="Course this test belongs to")
    title = Column(Text, nullable=False,
                   doc="Test title")
    description = Column(Text, nullable=True,
                         doc="Instructions shown before starting")
    test_type = Column(String(20), nullable=False,
                       doc="multiple_choice | written | coding")
    passing_score = Column(Integer, nullable=False, default=70,
                           doc="Percentage needed to pass")
    time_limit_minutes = Column(Integer, nullable=True,
                                doc="Informational time limit shown to the client")
    max_attempts = Column(Integer, nullable=True, default=3,
                          doc="Attempts allowed per user")
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False,
                        doc="Admin who created the test")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when test was created")

    course = relationship("Course", back_populates="tests")
    questions = relationship("TestQuestion", back_populates="test",
                             order_by="TestQuestion.order_index",
                             cascade="all, delete-orphan")
    attempts = relationship("TestAttempt", back_populates="test")

    __table_args__ = (
        CheckConstraint("test_type IN ('multiple_choice', 'written', 'coding')",
                        name="ck_tests_test_type"),
        Index("ix_tests_course_id", "course_id"),
    )

    def __repr__(self):
        return f"<Test(id={self.id}, title='{self.title}', type='{self.test_type}')>"


class TestQuestion(Base):
    """SQLAlchemy model for the test_questions table."""
    __tablename__ = "test_questions"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique question identifier")
    test_id = Column(String(36), ForeignKey("tests.id", ondelete="CASCADE"), nullable=False,
                     doc="Owning test")
    question_text = Column(Text, nullable=False,
                           doc="Question prompt")
    question_type = Column(String(20), nullable=False,
                           doc="multiple_choice | written | coding (may differ from the test type)")
    points = Column(Integer, nullable=False, default=1,
                    doc="Points available for this question")
    order_index = Column(Integer, nullable=False,
                         doc="Zero-based position within the test")

    test = relationship("Test", back_populates="questions")
    options = relationship("QuestionOption", back_populates="question",
                           order_by="QuestionOption.order_index",
                           cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("points > 0", name="ck_test_questions_points"),
        Index("ix_test_questions_test_id", "test_id"),
    )

    def __repr__(self):
        return f"<TestQuestion(id={self.id}, test={self.test_id}, order={self.order_index})>"


class QuestionOption(Base):
    """SQLAlchemy model for the question_options table."""
    __tablename__ = "question_options"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique option identifier")
    question_id = Column(String(36), ForeignKey("test_questions.id", ondelete="CASCADE"),
                         nullable=False, doc="Owning question")
    option_text = Column(Text, nullable=False,
                         doc="Option label shown to the candidate")
    is_correct = Column(Boolean, nullable=False, default=False,
                        doc="Whether selecting this option earns the question's points")
    order_index = Column(Integer, nullable=False,
                         doc="Zero-based position within the question")

    question = relationship("TestQuestion", back_populates="options")

    __table_args__ = (
        Index("ix_question_options_question_id", "question_id"),
    )

    def __repr__(self):
        return f"<QuestionOption(id={self.id}, question={self.question_id}, correct={self.is_correct})>"
