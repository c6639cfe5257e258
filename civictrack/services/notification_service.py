"""
Notification Service - breach, resolution and status notifications.

Delivery goes through a NotificationSink:
    notify(issue_id, title, body, kind, recipient)

`recipient` is a user id, or STAFF_RECIPIENT to address every official.
Delivery failures are logged and never propagate to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
import logging

from firebase_admin import messaging

from civictrack.models.issue import Issue
from civictrack.utils.timeutils import to_iso, utcnow

logger = logging.getLogger(__name__)

STAFF_RECIPIENT = "staff"
STAFF_ROLE = "official"


class NotificationKind:
    SLA_BREACH = "SLA_BREACH"
    RESOLUTION = "RESOLUTION"
    SUBMISSION = "SUBMISSION"
    STATUS_CHANGE = "STATUS_CHANGE"


class NotificationSink(ABC):

    @abstractmethod
    def notify(self, issue_id: str, title: str, body: str, kind: str, recipient: str) -> None:
        pass


class FirestoreNotificationSink(NotificationSink):
    """
    Persists in-app notifications under users/{uid}/notifications and sends
    an FCM push when the user document carries an fcmToken.
    """

    def __init__(self, db, users_collection: str = "users"):
        self.db = db
        self.users_collection = users_collection

    def notify(self, issue_id: str, title: str, body: str, kind: str, recipient: str) -> None:
        if not recipient:
            logger.warning(f"No recipient for {kind} notification on issue {issue_id}")
            return

        try:
            if recipient == STAFF_RECIPIENT:
                docs = self.db.collection(self.users_collection).where("role", "==", STAFF_ROLE).stream()
                for doc in docs:
                    self._deliver(doc.id, doc.to_dict() or {}, issue_id, title, body, kind)
            else:
                doc = self.db.collection(self.users_collection).document(recipient).get()
                self._deliver(recipient, (doc.to_dict() or {}) if doc.exists else {}, issue_id, title, body, kind)
        except Exception as e:
            logger.error(f"❌ Failed to deliver {kind} notification for issue {issue_id}: {e}")

    def _deliver(self, uid: str, user: dict, issue_id: str, title: str, body: str, kind: str) -> None:
        self.db.collection(self.users_collection).document(uid).collection("notifications").add({
            "title": title,
            "body": body,
            "type": kind,
            "data": {"issueId": issue_id},
            "read": False,
            "createdAt": to_iso(utcnow()),
        })

        token = user.get("fcmToken")
        if not token:
            return
        try:
            messaging.send(messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data={"issueId": issue_id, "type": kind},
                token=token,
            ))
        except Exception as e:
            logger.warning(f"Push notification to {uid} failed: {e}")


@dataclass
class SentNotification:
    issue_id: str
    title: str
    body: str
    kind: str
    recipient: str


class InMemoryNotificationSink(NotificationSink):
    """Collects notifications in a list; used in USE_MOCK_DB mode."""

    def __init__(self):
        self.sent: List[SentNotification] = []

    def notify(self, issue_id: str, title: str, body: str, kind: str, recipient: str) -> None:
        self.sent.append(SentNotification(issue_id, title, body, kind, recipient))
        logger.info(f"[NOTIFY] {kind} -> {recipient}: {title}")


class NotificationService:
    """Builds the citizen/staff messages for issue lifecycle events."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def notify_breach(self, issue: Issue) -> None:
        """One message to the reporting citizen, one to staff."""
        if issue.uid:
            self.sink.notify(
                issue.id,
                "Issue Delayed (SLA Breach)",
                f"We are sorry, but your reported issue '{issue.title}' is taking longer than expected to resolve.",
                NotificationKind.SLA_BREACH,
                issue.uid,
            )
        self.sink.notify(
            issue.id,
            "SLA Breach Alert",
            f"Issue '{issue.title}' has breached its SLA. Immediate action required.",
            NotificationKind.SLA_BREACH,
            STAFF_RECIPIENT,
        )
        logger.warning(f"⚠️ SLA breach notified for issue {issue.id}")

    def notify_submission(self, issue: Issue) -> None:
        if not issue.uid:
            return
        self.sink.notify(
            issue.id,
            "Issue Reported Successfully",
            f"Your issue '{issue.title}' has been successfully reported. Token ID: {issue.id}",
            NotificationKind.SUBMISSION,
            issue.uid,
        )

    def notify_resolution(self, issue: Issue) -> None:
        if not issue.uid:
            return
        self.sink.notify(
            issue.id,
            "Issue Resolved",
            f"Your reported issue '{issue.title}' has been resolved. Thank you for helping improve the city.",
            NotificationKind.RESOLUTION,
            issue.uid,
        )

    def notify_status_change(self, issue: Issue, new_status: Optional[str] = None) -> None:
        if not issue.uid:
            return
        new_status = new_status or issue.status.value
        self.sink.notify(
            issue.id,
            "Issue Status Updated",
            f"Your reported issue '{issue.title}' is now {new_status}.",
            NotificationKind.STATUS_CHANGE,
            issue.uid,
        )
