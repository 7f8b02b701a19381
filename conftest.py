"""Shared fixtures for the citation intake tests."""

import errno
from typing import Callable, Dict, Optional, Set

import pytest

from citation_intake.orchestration import EventBus, SessionController
from citation_intake.storage import DraftStore, InMemoryMedium
from citation_intake.utils.logging import clear_context


class FaultyMedium(InMemoryMedium):
    """In-memory medium that fails selected reads and writes on demand."""

    def __init__(self):
        super().__init__()
        self.write_failures: Dict[str, int] = {}
        self.write_attempts: Dict[str, int] = {}
        self.read_failures: Set[str] = set()
        self.fail_when: Optional[Callable[[str, str], bool]] = None

    def fail_writes(self, key: str, times: int = -1) -> None:
        """Fail the next ``times`` writes to key (-1 fails every write)."""
        self.write_failures[key] = times

    def get_item(self, key):
        if key in self.read_failures:
            raise OSError(errno.EIO, "simulated read failure", key)
        return super().get_item(key)

    def set_item(self, key, value):
        self.write_attempts[key] = self.write_attempts.get(key, 0) + 1
        if self.fail_when is not None and self.fail_when(key, value):
            raise OSError(errno.EIO, "simulated write failure", key)
        remaining = self.write_failures.get(key, 0)
        if remaining:
            if remaining > 0:
                self.write_failures[key] = remaining - 1
            raise OSError(errno.EIO, "simulated write failure", key)
        super().set_item(key, value)


@pytest.fixture(autouse=True)
def reset_logging_context():
    yield
    clear_context()


@pytest.fixture
def medium():
    return FaultyMedium()


@pytest.fixture
def store(medium):
    return DraftStore(medium, retry_backoff_seconds=0)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def controller(store, events):
    session = SessionController(store, events=events)
    session.start()
    return session
