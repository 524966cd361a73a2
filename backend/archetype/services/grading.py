"""
Grading Service - answer submission, auto-grading and manual grading.

Submission rules:
1. A multiple choice answer with a selected option is auto-graded: the
   question's full points if the option is correct, 0 otherwise.
2. Any other answer (written, coding, or multiple choice left unselected)
   is stored with points_awarded = NULL for manual grading.
3. If every answer was auto-graded, score = round(100 * earned / total, 2)
   and the attempt is graded immediately; otherwise it waits in "submitted".

Status changes are conditional updates (WHERE status = <expected>), so two
requests racing on the same attempt can never both succeed. Notifications
are sent only after the grading transaction has committed.
"""

import time
from datetime import datetime, timezone
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from archetype.errors import (
    AssessmentError, ConcurrencyConflictError, InvalidStateError, NotFoundError,
    PersistenceError, ValidationFailedError
)
from archetype.models.attempt import (
    TestAttempt, TestAnswer, AttemptFlag,
    STATUS_IN_PROGRESS, STATUS_SUBMITTED, STATUS_GRADED
)
from archetype.models.course import Course
from archetype.models.test import Test
from archetype.models.user import User
from archetype.services import notifications
from archetype.services.test_definitions import load_test
from archetype.logging_config import get_logger, log_with_context

logger = get_logger("grading")

PENDING_REVIEW_FEEDBACK = (
    "Your responses have been submitted and are awaiting manual review by our team. "
    "You will be notified once grading is complete."
)


def percentage(earned: float, total: float) -> float:
    """Score as a percentage with two decimals."""
    if total <= 0:
        return 0.0
    return round(100.0 * earned / total, 2)


def is_passed(score, passing_score: int) -> bool:
    return score is not None and score >= passing_score


def _format_score(score: float) -> str:
    return "{:.2f}".format(score).rstrip("0").rstrip(".")


def result_feedback(score: float, passing_score: int) -> str:
    shown = _format_score(score)
    if score >= passing_score:
        return ("Excellent work! You scored {}% and passed the assessment. Your strong "
                "performance demonstrates your understanding of the material.").format(shown)
    return ("You scored {}%. While you didn't reach the passing score of {}%, this is a "
            "learning opportunity. Review the materials and consider the areas where you "
            "can improve.").format(shown, passing_score)


def _transition(db: Session, attempt_id: str, expected_status: str, **values):
    """Move the attempt forward only if nobody changed its status since it was read."""
    result = db.execute(
        update(TestAttempt)
        .where(TestAttempt.id == attempt_id, TestAttempt.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            "Attempt was modified by another request, please retry",
            attempt_id=attempt_id)


def _send(db, notifier, user_id, event, message, payload):
    if notifier is None:
        return
    notifications.notify(db, notifier, user_id, event, message, payload)


def submit_attempt(db: Session, attempt_id: str, user_id: str, answers: list,
                   notifier=None, test_id: str = None) -> dict:
    """
    Store the answers of an in_progress attempt and grade what can be graded.

    Args:
        db: Database session
        attempt_id: Attempt being submitted
        user_id: Acting user; must own the attempt
        answers: list of AnswerSubmit (question_id, answer_text, selected_option_id)
        notifier: NotificationEmitter used after commit (None disables notifications)
        test_id: When given, the attempt must belong to this test

    Returns:
        dict with status, score, feedback, passed and needs_grading
    """
    start_time = time.time()

    attempt = db.query(TestAttempt).filter(
        TestAttempt.id == attempt_id,
        TestAttempt.user_id == user_id,
    ).first()
    if not attempt or (test_id is not None and attempt.test_id != test_id):
        raise NotFoundError("Test attempt not found", attempt_id=attempt_id)

    if attempt.status != STATUS_IN_PROGRESS:
        raise InvalidStateError("Test already submitted", status=attempt.status)

    if not answers:
        raise ValidationFailedError("At least one answer is required")
    question_ids = [a.question_id for a in answers]
    if len(set(question_ids)) != len(question_ids):
        raise ValidationFailedError("Each question may be answered only once")

    test = load_test(db, attempt.test_id)
    questions = {q.id: q for q in test.questions}
    passing_score = test.passing_score
    test_title = test.title

    total_points = 0
    earned_points = 0.0
    auto_gradable = True

    try:
        for answer in answers:
            question = questions.get(answer.question_id)
            if question is None:
                raise NotFoundError("Question not found in this test",
                                    question_id=answer.question_id)

            total_points += question.points
            points_awarded = None

            if question.question_type == "multiple_choice" and answer.selected_option_id:
                option = next((o for o in question.options
                               if o.id == answer.selected_option_id), None)
                if option is None:
                    raise NotFoundError("Option not found for this question",
                                        question_id=answer.question_id,
                                        option_id=answer.selected_option_id)
                points_awarded = float(question.points) if option.is_correct else 0.0
                earned_points += points_awarded
            else:
                auto_gradable = False

            db.add(TestAnswer(
                attempt_id=attempt.id,
                question_id=question.id,
                answer_text=answer.answer_text or None,
                selected_option_id=answer.selected_option_id or None,
                points_awarded=points_awarded,
            ))

        db.flush()

        now = datetime.now(timezone.utc)
        score = None
        if auto_gradable and total_points > 0:
            score = percentage(earned_points, total_points)
            status = STATUS_GRADED
            feedback = result_feedback(score, passing_score)
        else:
            status = STATUS_SUBMITTED
            feedback = PENDING_REVIEW_FEEDBACK

        _transition(db, attempt.id, STATUS_IN_PROGRESS,
                    status=status,
                    submitted_at=now,
                    score=score,
                    graded_at=now if status == STATUS_GRADED else None,
                    feedback=feedback)
        db.commit()
    except AssessmentError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        raise ConcurrencyConflictError(
            "Answers for this attempt were already stored by another request",
            attempt_id=attempt_id) from e
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Submission failed: {}".format(e),
                         context={"attempt_id": attempt_id})
        raise PersistenceError("Failed to submit test") from e

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt submitted: status={}, score={} ({}/{} points)".format(
            status, score, earned_points, total_points),
        context={"attempt_id": attempt_id, "user_id": user_id, "test_id": str(test.id)},
        extra_data={"duration_ms": round(duration_ms, 2), "auto_graded": status == STATUS_GRADED})

    passed = is_passed(score, passing_score)
    if status == STATUS_GRADED:
        event = notifications.EVENT_GRADED_PASSED if passed else notifications.EVENT_GRADED_FAILED
    else:
        event = notifications.EVENT_SUBMITTED_PENDING
    _send(db, notifier, user_id, event, feedback, {
        "attempt_id": attempt_id,
        "test_id": str(test.id),
        "test_title": test_title,
        "score": score,
        "passing_score": passing_score,
    })

    return {
        "attempt_id": attempt_id,
        "status": status,
        "score": score,
        "feedback": feedback,
        "passed": passed,
        "needs_grading": status != STATUS_GRADED,
    }


def grade_attempt(db: Session, attempt_id: str, grader_id: str, entries: list,
                  overall_feedback: str = None, notifier=None) -> dict:
    """
    Apply a grader's points to a submitted attempt and finalize its score.

    Grader entries override the stored points of their answers; the score is
    computed over every answer of the attempt, so answers auto-graded at
    submission keep counting. Awards outside [0, question.points] and answers
    left ungraded are rejected.

    Args:
        entries: list of AnswerGrade (question_id, points_awarded, feedback)

    Raises:
        NotFoundError: the attempt does not exist
        InvalidStateError: the attempt is not in the submitted state
        ValidationFailedError: an entry names an unanswered question, grades a
            question twice or awards points outside [0, question.points]; or the
            entries leave an answer without points (partial grading is rejected)
        ConcurrencyConflictError: the attempt left the submitted state underfoot
    """
    start_time = time.time()

    attempt = db.query(TestAttempt).options(
        selectinload(TestAttempt.answers).joinedload(TestAnswer.question),
        joinedload(TestAttempt.test),
    ).filter(TestAttempt.id == attempt_id).first()
    if not attempt:
        raise NotFoundError("Attempt not found", attempt_id=attempt_id)

    if attempt.status != STATUS_SUBMITTED:
        raise InvalidStateError("Test not in submitted state", status=attempt.status)

    answers_by_question = {a.question_id: a for a in attempt.answers}
    awarded = {}
    for entry in entries:
        if entry.question_id in awarded:
            raise ValidationFailedError("Each question may be graded only once",
                                        question_id=entry.question_id)
        answer = answers_by_question.get(entry.question_id)
        if answer is None:
            raise ValidationFailedError("Question was not answered in this attempt",
                                        question_id=entry.question_id)
        max_points = answer.question.points
        if entry.points_awarded < 0 or entry.points_awarded > max_points:
            raise ValidationFailedError(
                "points_awarded must be between 0 and {}".format(max_points),
                question_id=entry.question_id, max_points=max_points)
        awarded[entry.question_id] = entry

    ungraded = [
        a.question_id for a in attempt.answers
        if a.question_id not in awarded and a.points_awarded is None
    ]
    if ungraded:
        raise ValidationFailedError("Some answers are still ungraded", question_ids=ungraded)

    total_points = 0
    earned_points = 0.0
    for answer in attempt.answers:
        total_points += answer.question.points
        entry = awarded.get(answer.question_id)
        earned_points += float(entry.points_awarded) if entry else answer.points_awarded

    score = percentage(earned_points, total_points)
    student_id = attempt.user_id
    passing_score = attempt.test.passing_score
    test_title = attempt.test.title
    test_id = str(attempt.test_id)

    try:
        for question_id, entry in awarded.items():
            answer = answers_by_question[question_id]
            answer.points_awarded = float(entry.points_awarded)
            answer.feedback = entry.feedback
        db.flush()

        _transition(db, attempt.id, STATUS_SUBMITTED,
                    status=STATUS_GRADED,
                    score=score,
                    graded_at=datetime.now(timezone.utc),
                    graded_by=grader_id,
                    feedback=overall_feedback)
        db.commit()
    except AssessmentError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Grading failed: {}".format(e),
                         context={"attempt_id": attempt_id})
        raise PersistenceError("Failed to grade test") from e

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt graded manually: score={} ({}/{} points)".format(score, earned_points, total_points),
        context={"attempt_id": attempt_id, "grader_id": grader_id, "user_id": student_id},
        extra_data={"duration_ms": round(duration_ms, 2), "answers_graded": len(awarded)})

    passed = is_passed(score, passing_score)
    event = notifications.EVENT_GRADED_PASSED if passed else notifications.EVENT_GRADED_FAILED
    _send(db, notifier, student_id, event,
          overall_feedback or result_feedback(score, passing_score),
          {"attempt_id": attempt_id, "test_id": test_id, "test_title": test_title,
           "score": score, "passing_score": passing_score})

    return {"attempt_id": attempt_id, "status": STATUS_GRADED, "score": score, "passed": passed}


def list_pending_grading(db: Session) -> list:
    """Submitted attempts waiting for a grader, oldest submission first."""
    rows = (
        db.query(TestAttempt, Test, User, Course)
        .join(Test, TestAttempt.test_id == Test.id)
        .join(User, TestAttempt.user_id == User.id)
        .join(Course, Test.course_id == Course.id)
        .filter(TestAttempt.status == STATUS_SUBMITTED)
        .order_by(TestAttempt.submitted_at.asc())
        .all()
    )
    return [
        {
            "attempt_id": str(attempt.id),
            "test_id": str(test.id),
            "user_id": str(user.id),
            "submitted_at": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
            "test_title": test.title,
            "course_id": str(course.id),
            "course_title": course.title,
            "student_name": user.full_name,
        }
        for attempt, test, user, course in rows
    ]


def load_attempt(db: Session, attempt_id: str) -> TestAttempt:
    attempt = db.query(TestAttempt).options(
        selectinload(TestAttempt.answers).joinedload(TestAnswer.question),
        selectinload(TestAttempt.flags),
        joinedload(TestAttempt.test),
    ).filter(TestAttempt.id == attempt_id).first()
    if not attempt:
        raise NotFoundError("Attempt not found", attempt_id=attempt_id)
    return attempt


def serialize_attempt(attempt: TestAttempt) -> dict:
    """Serialize a TestAttempt with its answers and flags for API response."""
    answers = sorted(attempt.answers, key=lambda a: a.question.order_index)
    return {
        "id": str(attempt.id),
        "test_id": str(attempt.test_id),
        "test_title": attempt.test.title if attempt.test else None,
        "user_id": str(attempt.user_id),
        "status": attempt.status,
        "attempt_number": attempt.attempt_number,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "submitted_at": attempt.submitted_at.isoformat() if attempt.submitted_at else None,
        "score": attempt.score,
        "passed": is_passed(attempt.score, attempt.test.passing_score) if attempt.test else None,
        "graded_at": attempt.graded_at.isoformat() if attempt.graded_at else None,
        "graded_by": str(attempt.graded_by) if attempt.graded_by else None,
        "feedback": attempt.feedback,
        "answers": [
            {
                "question_id": str(a.question_id),
                "question_text": a.question.question_text,
                "question_type": a.question.question_type,
                "points": a.question.points,
                "answer_text": a.answer_text,
                "selected_option_id": str(a.selected_option_id) if a.selected_option_id else None,
                "points_awarded": a.points_awarded,
                "feedback": a.feedback,
            }
            for a in answers
        ],
        "flags": [
            {
                "id": str(f.id),
                "reason": f.reason,
                "flagged_by": str(f.flagged_by),
                "created_at": f.created_at.isoformat() if f.created_at else None,
            }
            for f in (attempt.flags or [])
        ],
    }


def list_results(db: Session, user_id: str) -> list:
    """All of the user's attempts, most recent submission first."""
    attempts = (
        db.query(TestAttempt)
        .options(joinedload(TestAttempt.test))
        .filter(TestAttempt.user_id == user_id)
        .order_by(TestAttempt.submitted_at.desc(), TestAttempt.started_at.desc())
        .all()
    )
    return [
        {
            "id": str(a.id),
            "test_id": str(a.test_id),
            "test_title": a.test.title,
            "test_type": a.test.test_type,
            "passing_score": a.test.passing_score,
            "status": a.status,
            "attempt_number": a.attempt_number,
            "score": a.score,
            "passed": is_passed(a.score, a.test.passing_score),
            "feedback": a.feedback,
            "started_at": a.started_at.isoformat() if a.started_at else None,
            "submitted_at": a.submitted_at.isoformat() if a.submitted_at else None,
        }
        for a in attempts
    ]


def flag_attempt(db: Session, attempt_id: str, flagged_by: str, reason: str,
                 notifier=None) -> AttemptFlag:
    """Record a review flag on an attempt and tell its owner."""
    attempt = db.query(TestAttempt).filter(TestAttempt.id == attempt_id).first()
    if not attempt:
        raise NotFoundError("Attempt not found", attempt_id=attempt_id)

    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailedError("Flag reason cannot be empty")

    flag = AttemptFlag(attempt_id=attempt.id, flagged_by=flagged_by, reason=reason)
    db.add(flag)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to flag attempt") from e
    db.refresh(flag)

    log_with_context(logger, "INFO",
        "Attempt {} flagged: {}".format(attempt_id, reason[:100]),
        context={"attempt_id": attempt_id, "flag_id": str(flag.id), "flagged_by": flagged_by})

    _send(db, notifier, attempt.user_id, notifications.EVENT_FLAGGED,
          "Your attempt has been flagged for review. Reason: {}".format(reason),
          {"attempt_id": attempt_id, "flag_id": str(flag.id)})
    return flag
