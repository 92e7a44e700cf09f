import pytest

from factories import FakeClock
from reconciler.engine.waiter import EventWaiter


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def waiter_for(clock):
    """Build an EventWaiter over *provider* that never really sleeps."""

    def build(provider, poll_interval=0.3):
        return EventWaiter(provider, poll_interval=poll_interval, clock=clock, sleep=clock.sleep)

    return build
