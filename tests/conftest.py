import os
import sys
import tempfile
from pathlib import Path

# Keep settings from creating directories in the real home folder.
os.environ.setdefault("TYREHERO_DATA_DIR", tempfile.mkdtemp(prefix="tyrehero-tests-"))

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from services.offline_queue import OfflineRequestQueue


class FakeClock:
    """Millisecond clock the tests can move by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeClient:
    """Records delivery order; fails for payloads whose name is in ``failing``."""

    def __init__(self, failing=(), error=None):
        self.failing = set(failing)
        self.error = error
        self.delivered: list[dict] = []
        self.calls = 0

    def deliver(self, payload):
        from services.delivery import DeliveryError

        self.calls += 1
        if self.error is not None:
            raise self.error
        if payload.get("name") in self.failing:
            raise DeliveryError("HTTP 500: boom", status_code=500)
        self.delivered.append(payload)
        return {"ok": True}


@pytest.fixture()
def engine():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def queue(session_factory, clock):
    return OfflineRequestQueue("testQueue", session_factory, clock=clock)


@pytest.fixture()
def broken_factory():
    state = {"broken": True}

    def factory():
        if state["broken"]:
            raise OperationalError("INSERT INTO queuedrequest", {}, Exception("disk I/O error"))
        return state["factory"]()

    factory.state = state
    return factory
