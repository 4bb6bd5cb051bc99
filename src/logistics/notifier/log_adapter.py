"""Notifier that writes merchant events to the structured log.

Used where no push transport is deployed; a log shipper forwards the
``merchant_event`` lines to the session gateway.
"""

import structlog

from logistics.notifier.port import NotifierPort

logger = structlog.get_logger("logistics.merchant_events")


class LoggingNotifier(NotifierPort):
    def publish(self, merchant_id: str, event_name: str, payload: dict) -> dict:
        logger.info("merchant_event", merchant_id=merchant_id, event=event_name, payload=payload)
        return {"status": "sent"}
