"""
Attempts API routes - results, grading queue, manual grading and flags.

Provides endpoints for:
- Listing the caller's own results
- Listing attempts waiting for manual grading
- Viewing attempt details
- Grading a submitted attempt
- Flagging attempts for review
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from archetype.database import get_db
from archetype.identity import (
    CurrentUser, can_access_user, ensure_can_grade, get_current_user, require_roles
)
from archetype.models.attempt import TestAttempt
from archetype.schemas import FlagRequest, GradeRequest
from archetype.services import grading
from archetype.services.notifications import NotificationEmitter, get_notifier
from archetype.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


@router.get("/api/attempts/results")
def list_results(user: CurrentUser = Depends(get_current_user),
                 db: Session = Depends(get_db)):
    """The caller's attempts with scores and pass/fail."""
    return {"results": grading.list_results(db, user.id)}


@router.get("/api/attempts/pending")
def pending_grading(user: CurrentUser = Depends(require_roles("supervisor", "admin")),
                    db: Session = Depends(get_db)):
    """Submitted attempts waiting for manual grading."""
    pending = grading.list_pending_grading(db)
    log_with_context(logger, "INFO", "Listed {} attempts pending grading".format(len(pending)),
                     context={"user_id": user.id})
    return {"pending_tests": pending}


@router.get("/api/attempts/{attempt_id}")
def get_attempt(attempt_id: str,
                user: CurrentUser = Depends(get_current_user),
                db: Session = Depends(get_db)):
    """Attempt detail for its owner, the owner's supervisor, or an admin."""
    attempt = grading.load_attempt(db, attempt_id)
    if not can_access_user(db, user, attempt.user_id):
        raise HTTPException(status_code=403, detail="Not authorized to view this attempt")
    return grading.serialize_attempt(attempt)


@router.post("/api/attempts/{attempt_id}/grade")
def grade_attempt(attempt_id: str, request: GradeRequest,
                  user: CurrentUser = Depends(require_roles("supervisor", "admin")),
                  db: Session = Depends(get_db),
                  notifier: NotificationEmitter = Depends(get_notifier)):
    """Grade a submitted attempt. Supervisors may only grade their own learners."""
    if request.attempt_id is not None and request.attempt_id != attempt_id:
        raise HTTPException(status_code=400, detail="attempt_id does not match the URL")

    attempt = db.query(TestAttempt).filter(TestAttempt.id == attempt_id).first()
    if not attempt:
        raise HTTPException(status_code=404, detail="Attempt not found")
    ensure_can_grade(db, user, attempt.user_id)

    result = grading.grade_attempt(
        db, attempt_id, user.id, request.answers,
        overall_feedback=request.feedback, notifier=notifier)
    result["message"] = "Test graded successfully"
    return result


@router.post("/api/attempts/{attempt_id}/flag", status_code=201)
def flag_attempt(attempt_id: str, request: FlagRequest,
                 user: CurrentUser = Depends(require_roles("supervisor", "admin")),
                 db: Session = Depends(get_db),
                 notifier: NotificationEmitter = Depends(get_notifier)):
    """Create a review flag on an attempt with a reason."""
    flag = grading.flag_attempt(db, attempt_id, user.id, request.reason, notifier=notifier)
    return {
        "id": str(flag.id),
        "attempt_id": str(flag.attempt_id),
        "reason": flag.reason,
        "created_at": flag.created_at.isoformat() if flag.created_at else None,
    }
