"""
Attempt models - one user's run at a test and the answers given in it.

This is the central entity of the assessment lifecycle. Each attempt moves
forward only:
- in_progress: started, answers not yet submitted
- submitted: answers stored, waiting for manual grading
- graded: score final (auto-graded on submit or graded by a supervisor)
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Integer, Float, DateTime, ForeignKey, Index, String, UniqueConstraint
)
from sqlalchemy.orm import relationship
from archetype.database import Base

STATUS_IN_PROGRESS = "in_progress"
STATUS_SUBMITTED = "submitted"
STATUS_GRADED = "graded"


class TestAttempt(Base):
    """
    SQLAlchemy model for the test_attempts table.

    (test_id, user_id, attempt_number) is unique, so two concurrent starts can
    never both claim the same attempt number.
    """
    __tablename__ = "test_attempts"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False,
                     doc="Reference to the test being attempted")
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False,
                     doc="Reference to the user taking the test")
    status = Column(String(20), nullable=False, default=STATUS_IN_PROGRESS,
                    doc="Lifecycle status: in_progress | submitted | graded")
    attempt_number = Column(Integer, nullable=False,
                            doc="1-based attempt counter per (test, user)")
    started_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        doc="When the user started the test")
    submitted_at = Column(DateTime, nullable=True,
                          doc="When the answers were submitted")
    score = Column(Float, nullable=True,
                   doc="Percentage score with two decimals (NULL until graded)")
    graded_at = Column(DateTime, nullable=True,
                       doc="When the score became final")
    graded_by = Column(String(36), ForeignKey("users.id"), nullable=True,
                       doc="Supervisor/admin who graded manually (NULL for auto-grading)")
    feedback = Column(Text, nullable=True,
                      doc="Overall feedback shown to the user")

    test = relationship("Test", back_populates="attempts")
    user = relationship("User", back_populates="attempts", foreign_keys=[user_id])
    grader = relationship("User", foreign_keys=[graded_by])
    answers = relationship("TestAnswer", back_populates="attempt",
                           cascade="all, delete-orphan")
    flags = relationship("AttemptFlag", back_populates="attempt")

    __table_args__ = (
        UniqueConstraint("test_id", "user_id", "attempt_number",
                         name="uq_test_attempts_test_user_number"),
        Index("ix_test_attempts_user_id", "user_id"),
        Index("ix_test_attempts_status", "status"),
    )

    def __repr__(self):
        return f"<TestAttempt(id={self.id}, test={self.test_id}, user={self.user_id}, status='{self.status}')>"


class TestAnswer(Base):
    """
    SQLAlchemy model for the test_answers table.

    points_awarded NULL means the answer still needs manual grading.
    """
    __tablename__ = "test_answers"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique answer identifier")
    attempt_id = Column(String(36), ForeignKey("test_attempts.id", ondelete="CASCADE"),
                        nullable=False, doc="Owning attempt")
    question_id = Column(String(36), ForeignKey("test_questions.id"), nullable=False,
                         doc="Question being answered")
    answer_text = Column(Text, nullable=True,
                         doc="Free-text answer for written/coding questions")
    selected_option_id = Column(String(36), ForeignKey("question_options.id"), nullable=True,
                                doc="Chosen option for multiple choice questions")
    points_awarded = Column(Float, nullable=True,
                            doc="Points earned (NULL until graded)")
    feedback = Column(Text, nullable=True,
                      doc="Grader feedback for this answer")

    attempt = relationship("TestAttempt", back_populates="answers")
    question = relationship("TestQuestion")
    selected_option = relationship("QuestionOption")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_test_answers_attempt_question"),
    )

    def __repr__(self):
        return f"<TestAnswer(attempt={self.attempt_id}, question={self.question_id}, points={self.points_awarded})>"


class AttemptFlag(Base):
    """
    SQLAlchemy model for the attempt_flags table.

    Multiple flags can exist per attempt (flagged for different reasons by
    different reviewers). Flags never change the attempt's status.
    """
    __tablename__ = "attempt_flags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique flag identifier")
    attempt_id = Column(String(36), ForeignKey("test_attempts.id"), nullable=False,
                        doc="Reference to the flagged attempt")
    flagged_by = Column(String(36), ForeignKey("users.id"), nullable=False,
                        doc="Supervisor/admin who raised the flag")
    reason = Column(Text, nullable=False,
                    doc="Human-readable reason for flagging")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="When this flag was created")

    attempt = relationship("TestAttempt", back_populates="flags")

    __table_args__ = (
        Index("ix_attempt_flags_attempt_id", "attempt_id"),
    )

    def __repr__(self):
        return f"<AttemptFlag(id={self.id}, attempt={self.attempt_id}, reason='{self.reason[:50]}')>"
