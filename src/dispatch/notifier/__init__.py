"""Notifier adapter registry — pluggable notification collaborator.

Uses FakeNotifier by default. Production deployments select an adapter with
the NOTIFIER_ADAPTER environment variable.
"""

import os

import structlog

from dispatch.notifier.port import OPERATORS, Topic

logger = structlog.get_logger(__name__)

_notifier_instance = None


def get_notifier():
    """Return the configured notifier adapter (singleton)."""
    global _notifier_instance
    if _notifier_instance is None:
        adapter = os.environ.get("NOTIFIER_ADAPTER", "fake")
        if adapter == "fake":
            from dispatch.notifier.fake_adapter import FakeNotifier

            _notifier_instance = FakeNotifier()
        else:
            raise ValueError(f"Unknown notifier adapter: {adapter}")
    return _notifier_instance


def set_notifier(notifier) -> None:
    global _notifier_instance
    _notifier_instance = notifier


def reset_notifier():
    """Reset the notifier singleton (useful for testing)."""
    global _notifier_instance
    _notifier_instance = None


def notify(recipient_id: str, topic: Topic, **payload) -> bool:
    """Fire-and-forget notification.

    Failures are logged and never propagate to the caller; the state change
    that triggered the notification has already been committed.
    """
    try:
        result = get_notifier().notify(str(recipient_id), topic.value, payload)
    except Exception as exc:
        logger.error(
            "Notifier raised while sending",
            recipient_id=str(recipient_id),
            topic=topic.value,
            error=str(exc),
        )
        return False

    if result.get("status") != "sent":
        logger.warning(
            "Notification not sent",
            recipient_id=str(recipient_id),
            topic=topic.value,
            error=result.get("error"),
        )
        return False
    return True


def notify_operators(topic: Topic, **payload) -> bool:
    return notify(OPERATORS, topic, **payload)
