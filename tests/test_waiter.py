"""Tests for the event waiter."""

from datetime import timedelta
from unittest.mock import MagicMock

import asyncio
import pytest

from factories import T0, make_event
from reconciler.base.exceptions import AsyncTimeoutError, ProviderOperationFailedError
from reconciler.engine.waiter import (
    EventWaiter,
    WaitOutcome,
    WaitResult,
    event_matches,
    raise_for_result,
)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def waiter(client, clock):
    return EventWaiter(client, poll_interval=1.0, clock=clock, sleep=clock.sleep)


class TestWaitForEvent:
    def test_completed_first_poll(self, waiter, client, clock):
        event = make_event("linode_resize")
        client.list_events.return_value = [event]
        result = waiter.wait_for_event(100, "linode_resize", T0, timeout=10)
        assert result.outcome is WaitOutcome.COMPLETED
        assert result.ok
        assert result.event is event
        assert clock.sleeps == []
        client.list_events.assert_called_once_with(100, "linode", "linode_resize", T0)

    def test_completes_after_polling(self, waiter, client, clock):
        client.list_events.side_effect = [
            [],
            [make_event("linode_resize", "started")],
            [make_event("linode_resize", "finished")],
        ]
        result = waiter.wait_for_event(100, "linode_resize", T0, timeout=10)
        assert result.ok
        assert client.list_events.call_count == 3
        assert clock.sleeps == [1.0, 1.0]

    def test_failed(self, waiter, client):
        client.list_events.return_value = [make_event("linode_resize", "failed", event_id=9)]
        result = waiter.wait_for_event(100, "linode_resize", T0, timeout=10)
        assert result.outcome is WaitOutcome.FAILED
        with pytest.raises(ProviderOperationFailedError) as info:
            raise_for_result(result)
        assert info.value.entity_id == 100
        assert info.value.action == "linode_resize"
        assert "event 9" in str(info.value)

    def test_timeout(self, waiter, client, clock):
        client.list_events.return_value = [make_event("linode_resize", "started")]
        result = waiter.wait_for_event(100, "linode_resize", T0, timeout=2.5)
        assert result.outcome is WaitOutcome.TIMED_OUT
        assert result.elapsed == pytest.approx(2.5)
        assert clock.sleeps == [1.0, 1.0, 0.5]
        with pytest.raises(AsyncTimeoutError) as info:
            raise_for_result(result)
        assert info.value.entity_id == 100
        assert info.value.action == "linode_resize"
        assert "linode_resize on 100" in str(info.value)

    def test_zero_timeout_still_polls_once(self, waiter, client):
        client.list_events.return_value = []
        result = waiter.wait_for_event(100, "linode_boot", T0, timeout=0)
        assert result.outcome is WaitOutcome.TIMED_OUT
        client.list_events.assert_called_once()

    def test_stale_event_ignored(self, waiter, client):
        stale = make_event("linode_resize", created=T0 - timedelta(minutes=5))
        client.list_events.return_value = [stale]
        result = waiter.wait_for_event(100, "linode_resize", T0, timeout=1)
        assert result.outcome is WaitOutcome.TIMED_OUT

    def test_other_disk_ignored(self, waiter, client):
        client.list_events.side_effect = [
            [make_event("disk_resize", secondary_id=6)],
            [make_event("disk_resize", secondary_id=5)],
        ]
        result = waiter.wait_for_event(
            100, "disk_resize", T0, timeout=10, secondary_entity_id=5
        )
        assert result.ok
        assert result.event.secondary_entity.id == 5
        assert result.target == "100/5"

    def test_secondary_timeout_names_disk(self, waiter, client):
        client.list_events.return_value = []
        result = waiter.wait_for_event(100, "disk_resize", T0, timeout=0, secondary_entity_id=5)
        with pytest.raises(AsyncTimeoutError) as info:
            raise_for_result(result)
        assert info.value.entity_id == 5

    def test_async_variant(self, waiter, client):
        client.list_events.return_value = [make_event("linode_boot")]
        result = asyncio.run(waiter.await_for_event(100, "linode_boot", T0, 5))
        assert result.ok


class TestEventMatches:
    def test_wrong_entity(self):
        assert not event_matches(make_event("linode_boot", entity_id=1), 2, "linode", "linode_boot", None)

    def test_wrong_action(self):
        assert not event_matches(make_event("linode_boot"), 100, "linode", "linode_shutdown", None)

    def test_wrong_kind(self):
        event = make_event("disk_create", entity_type="disk")
        assert not event_matches(event, 100, "linode", "disk_create", None)

    def test_missing_secondary_accepted(self):
        assert event_matches(make_event("disk_create"), 100, "linode", "disk_create", T0, 5)

    def test_since_inclusive(self):
        assert event_matches(make_event("linode_boot", created=T0), 100, "linode", "linode_boot", T0)


class TestRaiseForResult:
    def test_completed_returns_event(self):
        event = make_event("linode_boot")
        result = WaitResult(WaitOutcome.COMPLETED, 100, "linode_boot", 0.0, event)
        assert raise_for_result(result) is event
