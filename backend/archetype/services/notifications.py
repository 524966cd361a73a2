"""
Notification Service - hands attempt outcomes to the delivery service and
records the matching in-app notification.

Delivery (email/SMS) belongs to the notification service; this module only
emits events to it. Emission happens after the grading transaction has
committed, so a failure here is logged and never undoes the grading.
"""

import time
from datetime import datetime, timezone

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from archetype import config
from archetype.errors import NotFoundError, NotificationError
from archetype.models.notification import Notification
from archetype.models.user import User
from archetype.logging_config import get_logger, log_with_context

logger = get_logger("notify")

EVENT_GRADED_PASSED = "graded-passed"
EVENT_GRADED_FAILED = "graded-failed"
EVENT_SUBMITTED_PENDING = "submitted-pending"
EVENT_FLAGGED = "flagged"

EVENTS = (EVENT_GRADED_PASSED, EVENT_GRADED_FAILED, EVENT_SUBMITTED_PENDING, EVENT_FLAGGED)

# event -> (in-app title, notification_type)
IN_APP_TEMPLATES = {
    EVENT_GRADED_PASSED: ("Assessment Passed!", "test_result"),
    EVENT_GRADED_FAILED: ("Assessment Results", "test_result"),
    EVENT_SUBMITTED_PENDING: ("Assessment Submitted", "test_submitted"),
    EVENT_FLAGGED: ("Attempt Flagged for Review", "flag"),
}


class NotificationEmitter:
    """Interface of the outbound notification channel."""

    def emit(self, user_id: str, event: str, payload: dict):
        raise NotImplementedError


class LoggingNotificationEmitter(NotificationEmitter):
    """Writes each event to the notify log channel. Used when no webhook is configured."""

    def emit(self, user_id: str, event: str, payload: dict):
        log_with_context(logger, "INFO", "Notification event: {}".format(event),
                         context={"user_id": user_id},
                         extra_data={"payload": payload})


class WebhookNotificationEmitter(NotificationEmitter):
    """POSTs each event as JSON to the notification service."""

    def __init__(self, url: str, timeout: float = config.NOTIFICATION_TIMEOUT_SECONDS,
                 client: httpx.Client = None):
        self.url = url
        self.timeout = timeout
        self.client = client

    def emit(self, user_id: str, event: str, payload: dict):
        body = {
            "user_id": user_id,
            "event": event,
            "payload": payload,
            "app": config.APP_NAME,
            "emitted_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            if self.client is not None:
                resp = self.client.post(self.url, json=body, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(self.url, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError("Webhook delivery failed: {}".format(e), event=event) from e


_default_emitter = None


def get_notifier() -> NotificationEmitter:
    """FastAPI dependency returning the configured emitter."""
    global _default_emitter
    if _default_emitter is None:
        if config.NOTIFICATION_WEBHOOK_URL:
            _default_emitter = WebhookNotificationEmitter(config.NOTIFICATION_WEBHOOK_URL)
        else:
            _default_emitter = LoggingNotificationEmitter()
    return _default_emitter


def _recipient_payload(db: Session, user_id: str) -> dict:
    user = db.get(User, user_id)
    if user is None:
        return {}
    return {
        "email": user.email,
        "full_name": user.full_name,
        "phone_number": user.phone_number,
    }


def notify(db: Session, emitter: NotificationEmitter, user_id: str, event: str,
           message: str, payload: dict = None) -> bool:
    """
    Emit ``event`` for ``user_id`` and store the in-app notification.

    Must be called after the originating transaction committed. Returns
    True when both the emission and the in-app record succeeded; failures
    are logged and reported through the return value only.
    """
    start_time = time.time()
    payload = dict(payload or {})
    payload.update(_recipient_payload(db, user_id))
    payload["message"] = message
    ok = True

    try:
        emitter.emit(user_id, event, payload)
    except Exception as e:
        ok = False
        log_with_context(logger, "ERROR",
            "Notification emission failed for event {}: {}".format(event, e),
            context={"user_id": user_id},
            extra_data={"event": event},
            exc_info=True)

    title, notification_type = IN_APP_TEMPLATES[event]
    try:
        db.add(Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
        ))
        db.commit()
    except SQLAlchemyError as e:
        ok = False
        db.rollback()
        log_with_context(logger, "ERROR",
            "Failed to store in-app notification: {}".format(e),
            context={"user_id": user_id},
            extra_data={"event": event})

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO" if ok else "WARNING",
        "Notification {} for event {}".format("sent" if ok else "partially sent", event),
        context={"user_id": user_id},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return ok


def list_notifications(db: Session, user_id: str) -> list:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .all()
    )
    return [serialize_notification(n) for n in rows]


def mark_read(db: Session, notification_id: str, user_id: str) -> dict:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.commit()
    return serialize_notification(notification)


def serialize_notification(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "title": n.title,
        "message": n.message,
        "notification_type": n.notification_type,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
