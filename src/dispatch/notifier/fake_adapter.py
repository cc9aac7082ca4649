"""Fake notifier adapter — records notifications for testing and development."""

from uuid import uuid4

from dispatch.notifier.port import NotifierPort


class FakeNotifier(NotifierPort):
    """Notifier that keeps every notification in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notifier unavailable"
        self.raise_on_send = False

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Notifier unavailable",
        raise_on_send: bool = False,
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_on_send = raise_on_send

    def notify(self, recipient_id: str, topic: str, payload: dict) -> dict:
        if self.raise_on_send:
            raise ConnectionError(self.failure_reason)
        if not self.should_succeed:
            return {"notification_id": None, "status": "failed", "error": self.failure_reason}

        notification_id = f"ntf-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "notification_id": notification_id,
                "recipient_id": recipient_id,
                "topic": topic,
                "payload": dict(payload),
            }
        )
        return {"notification_id": notification_id, "status": "sent"}

    def sent_to(self, recipient_id: str, topic: str | None = None) -> list[dict]:
        return [
            n for n in self.sent if n["recipient_id"] == recipient_id and (topic is None or n["topic"] == topic)
        ]

    def reset(self):
        """Clear sent notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notifier unavailable"
        self.raise_on_send = False
