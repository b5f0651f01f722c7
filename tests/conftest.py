import pytest

from core.clock import ManualClock
from helpers import TODAY, FakeStore, MemoryState, RecordingNotifier, local_ts


@pytest.fixture
def clock():
    return ManualClock(start=local_ts(TODAY, 9))


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def state():
    return MemoryState()


@pytest.fixture
def notifier():
    return RecordingNotifier()
