"""
Tests API routes - test definitions and the candidate/learner attempt flow.

Provides endpoints for:
- Creating a test with its questions and options (admin)
- Listing tests a candidate/learner can still attempt
- Viewing a test with the caller's attempt history
- Starting an attempt
- Submitting answers
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from archetype.database import get_db
from archetype.identity import CurrentUser, get_current_user, require_roles
from archetype.schemas import TestCreate, SubmitRequest
from archetype.services import admission, grading, test_definitions
from archetype.services.notifications import NotificationEmitter, get_notifier
from archetype.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

TAKER_ROLES = ("candidate", "learner")


@router.post("/api/tests", status_code=201)
def create_test(payload: TestCreate,
                user: CurrentUser = Depends(require_roles("admin")),
                db: Session = Depends(get_db)):
    """Create a test with nested questions and options in one transaction."""
    test = test_definitions.create_test(db, payload, creator_id=user.id)
    return {
        "message": "Test created successfully",
        "test": test_definitions.serialize_test(test),
        "questions": test_definitions.serialize_questions(test, include_answers=True),
    }


@router.get("/api/tests/available")
def available_tests(user: CurrentUser = Depends(require_roles(*TAKER_ROLES)),
                    db: Session = Depends(get_db)):
    """Tests in the caller's enrolled courses that still have attempts left."""
    return {"tests": test_definitions.list_available_tests(db, user.id)}


@router.get("/api/tests/{test_id}")
def get_test(test_id: str,
             user: CurrentUser = Depends(get_current_user),
             db: Session = Depends(get_db)):
    """Test details; answer keys are only shown to supervisors and admins."""
    return test_definitions.get_test(db, test_id, user.id, include_answers=user.can_grade)


@router.post("/api/tests/{test_id}/start", status_code=201)
def start_attempt(test_id: str,
                  user: CurrentUser = Depends(require_roles(*TAKER_ROLES)),
                  db: Session = Depends(get_db)):
    """Start the caller's next attempt if any remain."""
    result = admission.start_attempt_payload(db, test_id, user.id)
    result["message"] = "Test attempt started"
    return result


@router.post("/api/tests/{test_id}/submit")
def submit_attempt(test_id: str, request: SubmitRequest,
                   user: CurrentUser = Depends(require_roles(*TAKER_ROLES)),
                   db: Session = Depends(get_db),
                   notifier: NotificationEmitter = Depends(get_notifier)):
    """Submit answers for an in_progress attempt; auto-grades when possible."""
    result = grading.submit_attempt(
        db, request.attempt_id, user.id, request.answers,
        notifier=notifier, test_id=test_id)

    log_with_context(logger, "INFO",
        "Submission handled for test {}: {}".format(test_id, result["status"]),
        context={"attempt_id": request.attempt_id, "user_id": user.id})

    result["message"] = ("Test graded successfully" if not result["needs_grading"]
                         else "Test submitted for review")
    return result
