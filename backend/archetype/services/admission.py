"""
Admission Service - decides whether a user may start another attempt.

A new attempt is admitted while the user's attempt count for the test is
below the test's max_attempts. The next attempt_number is read and the row
inserted in one transaction; the unique constraint on
(test_id, user_id, attempt_number) rejects a concurrent start that claimed
the same number first. On such a conflict the transaction is rolled back
and admission is re-run against fresh state, which re-checks the ceiling.
Every collision means another start consumed a number, so the retries are
bounded by max_attempts and end in either a new attempt or QuotaExceeded.
"""

import time
from datetime import datetime, timezone
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from archetype.errors import (
    ConcurrencyConflictError, NotFoundError, PersistenceError, QuotaExceededError
)
from archetype.models.attempt import TestAttempt, STATUS_IN_PROGRESS
from archetype.models.test import Test
from archetype.services.test_definitions import effective_max_attempts, load_test, serialize_questions
from archetype.logging_config import get_logger, log_with_context

logger = get_logger("admission")


def _next_attempt_number(db: Session, test_id: str, user_id: str) -> int:
    highest = db.query(func.coalesce(func.max(TestAttempt.attempt_number), 0)).filter(
        TestAttempt.test_id == test_id,
        TestAttempt.user_id == user_id,
    ).scalar()
    return int(highest) + 1


def _admit(db: Session, test: Test, user_id: str) -> TestAttempt:
    max_attempts = effective_max_attempts(test)
    attempt_number = _next_attempt_number(db, test.id, user_id)
    if attempt_number > max_attempts:
        raise QuotaExceededError(attempts_made=attempt_number - 1, max_attempts=max_attempts)

    attempt = TestAttempt(
        test_id=test.id,
        user_id=user_id,
        status=STATUS_IN_PROGRESS,
        attempt_number=attempt_number,
        started_at=datetime.now(timezone.utc),
    )
    db.add(attempt)
    db.flush()
    return attempt


def start_attempt(db: Session, test_id: str, user_id: str) -> TestAttempt:
    """
    Create the next in_progress attempt for (test, user).

    Raises:
        NotFoundError: the test does not exist
        QuotaExceededError: every allowed attempt has been used
        ConcurrencyConflictError: starts kept colliding without using up the quota
    """
    start_time = time.time()

    test = db.get(Test, test_id)
    if test is None:
        raise NotFoundError("Test not found", test_id=test_id)

    max_attempts = effective_max_attempts(test)
    for try_no in range(max_attempts + 1):
        try:
            attempt = _admit(db, test, user_id)
            db.commit()
            break
        except QuotaExceededError as e:
            db.rollback()
            log_with_context(logger, "INFO",
                "Attempt rejected: {} of {} attempts used".format(e.attempts_made, e.max_attempts),
                context={"test_id": test_id, "user_id": user_id})
            raise
        except IntegrityError:
            db.rollback()
            log_with_context(logger, "WARNING",
                "Attempt number collision on try {}".format(try_no + 1),
                context={"test_id": test_id, "user_id": user_id})
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("Failed to start attempt") from e
    else:
        attempts_made = _next_attempt_number(db, test_id, user_id) - 1
        if attempts_made >= max_attempts:
            log_with_context(logger, "INFO",
                "Attempt rejected after collisions: {} of {} attempts used".format(
                    attempts_made, max_attempts),
                context={"test_id": test_id, "user_id": user_id})
            raise QuotaExceededError(attempts_made=attempts_made, max_attempts=max_attempts)
        raise ConcurrencyConflictError(
            "Another attempt was started concurrently, please retry",
            test_id=test_id)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt {} started".format(attempt.attempt_number),
        context={"attempt_id": str(attempt.id), "test_id": test_id, "user_id": user_id},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return attempt


def start_attempt_payload(db: Session, test_id: str, user_id: str) -> dict:
    """Start an attempt and return it with the answer-free question list."""
    attempt = start_attempt(db, test_id, user_id)
    test = load_test(db, test_id)
    return {
        "attempt_id": str(attempt.id),
        "attempt_number": attempt.attempt_number,
        "status": attempt.status,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "test_info": {
            "id": str(test.id),
            "title": test.title,
            "test_type": test.test_type,
            "time_limit_minutes": test.time_limit_minutes,
            "max_attempts": effective_max_attempts(test),
            "passing_score": test.passing_score,
        },
        "questions": serialize_questions(test, include_answers=False),
    }
