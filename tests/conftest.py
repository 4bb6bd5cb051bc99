import os
from pathlib import Path

import pytest

# Directory name → marker. BDD scenarios drive the same workflows as the
# application tests and run with them.
_DIRECTORY_MARKERS = {
    "domain": ("domain",),
    "application": ("application",),
    "bdd": ("application",),
    "integration": ("integration", "slow"),
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Initialise the logistics domain once and keep its context pushed.

    Adapters default to the in-memory fakes so no test ever reaches a real
    courier, gateway or merchant channel.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    for variable in ("COURIER_ADAPTER", "PAYMENT_GATEWAY", "NOTIFIER_ADAPTER"):
        os.environ.setdefault(variable, "fake")

    from logistics.domain import logistics

    logistics.init()
    logistics.domain_context().push()


def pytest_collection_modifyitems(config, items):
    for item in items:
        parts = Path(item.fspath).parts
        for directory, markers in _DIRECTORY_MARKERS.items():
            if directory not in parts:
                continue
            for marker in markers:
                if marker == "slow" and any(m.name == "fast" for m in item.iter_markers()):
                    continue
                item.add_marker(getattr(pytest.mark, marker))
            break


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    from logistics.domain import logistics
    from logistics.utils.db import drop_db, setup_db

    setup_db(logistics)
    yield
    drop_db(logistics)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Wipe repositories, broker queues and the event store after every test."""
    yield

    from logistics.wallet import ledger
    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()
    for _, broker in current_domain.brokers.items():
        broker._data_reset()
    current_domain.event_store.store._data_reset()
    ledger._merchant_locks.clear()
