"""Notification sink protocol."""

from typing import Any, Protocol


class NotificationSink(Protocol):
    """Receives contract lifecycle notifications from the service."""

    def notify(self, event_type: str, subject: str, payload: dict[str, Any]) -> None: ...
