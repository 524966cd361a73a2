"""
Notifications API routes - the caller's in-app inbox.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from archetype.database import get_db
from archetype.identity import CurrentUser, get_current_user
from archetype.services import notifications

router = APIRouter()


@router.get("/api/notifications")
def list_notifications(user: CurrentUser = Depends(get_current_user),
                       db: Session = Depends(get_db)):
    return {"notifications": notifications.list_notifications(db, user.id)}


@router.put("/api/notifications/{notification_id}/read")
def mark_read(notification_id: str,
              user: CurrentUser = Depends(get_current_user),
              db: Session = Depends(get_db)):
    notifications.mark_read(db, notification_id, user.id)
    return {"message": "Notification marked as read"}
