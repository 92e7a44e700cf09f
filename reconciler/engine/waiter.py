"""Wait for provider asynchronous operations by polling the event log.

The provider does not push completion notifications. After a mutating
call is accepted, :meth:`EventWaiter.wait_for_event` polls for an event
matching the entity and action that was created at or after a reference
timestamp, so an older operation on the same entity is never mistaken
for the one just issued.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from reconciler.base.async_support import AsyncMixin
from reconciler.base.compute import ComputeBlueprint
from reconciler.base.exceptions import AsyncTimeoutError, ProviderOperationFailedError
from reconciler.base.logger import rc_logger
from reconciler.base.models import EntityKind, Event, EventStatus


class WaitOutcome(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class WaitResult:
    """Outcome of one wait, with enough context to report it."""

    outcome: WaitOutcome
    entity_id: int
    action: str
    elapsed: float
    event: Event | None = None
    secondary_entity_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is WaitOutcome.COMPLETED

    @property
    def target(self) -> str:
        if self.secondary_entity_id is not None:
            return f"{self.entity_id}/{self.secondary_entity_id}"
        return str(self.entity_id)


def raise_for_result(result: WaitResult) -> Event:
    """Return the finished event or raise the matching error.

    Raises:
        ProviderOperationFailedError: The provider reported the action as failed.
        AsyncTimeoutError: No terminal event arrived in time.
    """
    entity_id = result.secondary_entity_id or result.entity_id
    if result.outcome is WaitOutcome.FAILED:
        raise ProviderOperationFailedError(
            f"{result.action} on {result.target} failed"
            + (f" (event {result.event.id})" if result.event else ""),
            entity_id=entity_id,
            action=result.action,
        )
    if result.outcome is WaitOutcome.TIMED_OUT:
        raise AsyncTimeoutError(
            f"Timed out after {result.elapsed:.1f}s waiting for "
            f"{result.action} on {result.target}",
            entity_id=entity_id,
            action=result.action,
        )
    assert result.event is not None
    return result.event


def event_matches(
    event: Event,
    entity_id: int,
    entity_kind: str,
    action: str,
    since: datetime | None,
    secondary_entity_id: int | None = None,
) -> bool:
    if event.entity is None or event.entity.id != entity_id:
        return False
    if event.entity.type != entity_kind or event.action != action:
        return False
    if since is not None and event.created < since:
        return False
    if secondary_entity_id is not None:
        secondary = event.secondary_entity
        if secondary is not None and secondary.id != secondary_entity_id:
            return False
    return True


class EventWaiter(AsyncMixin):
    """Blocking, bounded poller over the provider event log.

    Attributes:
        client: Provider used for ``list_events`` reads only.
        poll_interval: Seconds between polls.
    """

    def __init__(
        self,
        client: ComputeBlueprint,
        poll_interval: float = 0.3,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def wait_for_event(
        self,
        entity_id: int,
        action: str,
        since: datetime | None,
        timeout: float,
        *,
        entity_kind: str = EntityKind.LINODE.value,
        secondary_entity_id: int | None = None,
    ) -> WaitResult:
        """Poll until a matching event finishes or fails, or *timeout* elapses.

        Args:
            entity_id: Primary entity of the event (the instance, also for
                disk events).
            action: Event action to wait for.
            since: Ignore events created before this timestamp.
            timeout: Budget in seconds. At least one poll is always made.
            entity_kind: Primary entity type.
            secondary_entity_id: When set, events naming a different
                secondary entity (e.g. another disk) are ignored.

        Returns:
            A :class:`WaitResult`; this method does not raise on failure or
            timeout, see :func:`raise_for_result`.
        """
        action = getattr(action, "value", action)
        entity_kind = getattr(entity_kind, "value", entity_kind)
        started = self._clock()
        deadline = started + timeout
        polls = 0
        while True:
            polls += 1
            events = self.client.list_events(entity_id, entity_kind, action, since)
            for event in events:
                if not event_matches(
                    event, entity_id, entity_kind, action, since, secondary_entity_id
                ):
                    continue
                if event.status == EventStatus.FINISHED.value:
                    return self._finish(
                        WaitOutcome.COMPLETED, entity_id, action, started, event,
                        secondary_entity_id, polls,
                    )
                if event.status == EventStatus.FAILED.value:
                    return self._finish(
                        WaitOutcome.FAILED, entity_id, action, started, event,
                        secondary_entity_id, polls,
                    )

            remaining = deadline - self._clock()
            if remaining <= 0:
                return self._finish(
                    WaitOutcome.TIMED_OUT, entity_id, action, started, None,
                    secondary_entity_id, polls,
                )
            self._sleep(min(self.poll_interval, remaining))

    def _finish(
        self,
        outcome: WaitOutcome,
        entity_id: int,
        action: str,
        started: float,
        event: Event | None,
        secondary_entity_id: int | None,
        polls: int,
    ) -> WaitResult:
        result = WaitResult(
            outcome=outcome,
            entity_id=entity_id,
            action=action,
            elapsed=self._clock() - started,
            event=event,
            secondary_entity_id=secondary_entity_id,
        )
        log = rc_logger.info if result.ok else rc_logger.warning
        log(
            f"{action} on {result.target} {outcome.value} after {polls} poll(s)",
            entity_id=entity_id,
            action=action,
            operation="wait_for_event",
        )
        return result
