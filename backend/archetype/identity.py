"""
Identity/role context for API requests.

Authentication happens upstream: the gateway forwards the acting user's id
and role in the ``X-User-Id`` and ``X-User-Role`` headers, and this module
turns them into a ``CurrentUser`` without re-authenticating.
"""

from typing import Literal, Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from archetype.models.user import User

Role = Literal["candidate", "learner", "supervisor", "admin"]
ROLES = ("candidate", "learner", "supervisor", "admin")
GRADING_ROLES = ("supervisor", "admin")


class CurrentUser(BaseModel):
    id: str
    role: Role

    @property
    def can_grade(self) -> bool:
        return self.role in GRADING_ROLES


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Missing user identity")
    if x_user_role not in ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Unknown role")
    return CurrentUser(id=x_user_id, role=x_user_role)


def require_roles(*allowed: str):
    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail="Insufficient permissions")
        return user
    return checker


def can_access_user(db: Session, actor: CurrentUser, target_user_id: str) -> bool:
    """Admins see everyone, users see themselves, supervisors see their learners."""
    if actor.role == "admin" or actor.id == target_user_id:
        return True
    if actor.role == "supervisor":
        target = db.get(User, target_user_id)
        return target is not None and target.supervisor_id == actor.id
    return False


def ensure_can_grade(db: Session, actor: CurrentUser, student_id: str):
    """Only an admin or the student's own supervisor may grade their work."""
    if actor.role == "admin":
        return
    if actor.role == "supervisor":
        student = db.get(User, student_id)
        if student is not None and student.supervisor_id == actor.id:
            return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                        detail="Not authorized to grade this attempt")
