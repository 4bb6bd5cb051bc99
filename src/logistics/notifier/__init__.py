"""Merchant notifier factory.

Provides get_notifier() / set_notifier() to swap implementations:
- FakeNotifier for development and testing
- LoggingNotifier where events are forwarded from the log stream
"""

import os

from logistics.notifier.port import NotifierPort

_current_notifier: NotifierPort | None = None


def get_notifier() -> NotifierPort:
    """Return the configured notifier. Selected by NOTIFIER_ADAPTER, defaults to fake."""
    global _current_notifier
    if _current_notifier is None:
        adapter = os.environ.get("NOTIFIER_ADAPTER", "fake")
        if adapter == "fake":
            from logistics.notifier.fake_adapter import FakeNotifier

            _current_notifier = FakeNotifier()
        elif adapter == "log":
            from logistics.notifier.log_adapter import LoggingNotifier

            _current_notifier = LoggingNotifier()
        else:
            raise ValueError(f"Unknown notifier adapter: {adapter}")
    return _current_notifier


def set_notifier(notifier: NotifierPort) -> None:
    """Override the active notifier (useful for tests)."""
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    """Reset to the default notifier."""
    global _current_notifier
    _current_notifier = None
