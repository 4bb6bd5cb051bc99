"""Merchant notifier port (abstract interface).

Pushes live events to a merchant's open session (dashboard socket, app
channel). Delivery is best-effort; callers never depend on the outcome.
"""

from abc import ABC, abstractmethod


class NotifierPort(ABC):
    """Abstract merchant notification channel."""

    @abstractmethod
    def publish(self, merchant_id: str, event_name: str, payload: dict) -> dict:
        """Send ``event_name`` with ``payload`` to the merchant's session.

        Returns ``{"status": "sent" | "failed", "error": ...}``.
        """
        ...
