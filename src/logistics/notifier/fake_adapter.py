"""Fake notifier — records published events in memory for test assertions."""

from uuid import uuid4

from logistics.notifier.port import NotifierPort


class FakeNotifier(NotifierPort):
    def __init__(self):
        self.published: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Merchant session unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Merchant session unavailable"):
        """Configure the fake notifier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def publish(self, merchant_id: str, event_name: str, payload: dict) -> dict:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        record = {
            "message_id": f"evt-{uuid4().hex[:12]}",
            "merchant_id": merchant_id,
            "event": event_name,
            "payload": payload,
        }
        self.published.append(record)
        return {"message_id": record["message_id"], "status": "sent"}

    def events_for(self, merchant_id: str, event_name: str | None = None) -> list[dict]:
        return [
            r for r in self.published if r["merchant_id"] == merchant_id and (event_name is None or r["event"] == event_name)
        ]
