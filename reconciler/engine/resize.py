"""Plan (type) resize and disk expansion for a running instance.

A resize request moves through::

    IDLE -> TYPE_RESIZE_REQUESTED -> TYPE_RESIZE_WAITING
         [-> DISK_EXPANSION_REQUESTED -> DISK_EXPANSION_WAITING] -> IDLE

The provider treats a plan resize and a disk resize on the same instance
as mutually exclusive, so every step is issue -> wait -> next issue and
at most one asynchronous action is outstanding. Disks can only be
resized while the instance is offline: an instance that is not offline is
shut down once and booted again when the resizes are done, or straight
away if a step fails.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from reconciler.base.compute import ComputeBlueprint
from reconciler.base.exceptions import ReconcilerError
from reconciler.base.logger import rc_logger
from reconciler.base.models import Disk, EventAction, Instance, InstanceType
from reconciler.engine.sizing import (
    biggest_disk,
    check_capacity,
    check_disk_resize,
    expansion_target,
    total_disk_size,
)
from reconciler.engine.waiter import EventWaiter, raise_for_result


class ResizeState(Enum):
    IDLE = "idle"
    TYPE_RESIZE_REQUESTED = "type_resize_requested"
    TYPE_RESIZE_WAITING = "type_resize_waiting"
    DISK_EXPANSION_REQUESTED = "disk_expansion_requested"
    DISK_EXPANSION_WAITING = "disk_expansion_waiting"


class ResizeOrchestrator:
    """Drives one instance through a plan change and optional disk expansion.

    One orchestrator serves one reconciliation pass of one instance; it is
    not shared across threads.

    With ``defer_boot`` the instance stays offline after a disk resize and
    the caller must call :meth:`restore_power` once its last mutation is
    done (and :meth:`recover_power` if a step fails). Otherwise every
    :meth:`grow_disk` boots the instance again and waits for the boot.

    Attributes:
        state: Current :class:`ResizeState`.
        history: Every state entered, in order, starting with ``IDLE``.
        defer_boot: Leave the boot to the caller.
    """

    def __init__(
        self,
        client: ComputeBlueprint,
        waiter: EventWaiter,
        *,
        defer_boot: bool = False,
    ) -> None:
        self.client = client
        self.waiter = waiter
        self.defer_boot = defer_boot
        self.state = ResizeState.IDLE
        self.history: list[ResizeState] = [ResizeState.IDLE]
        self._shutdown_at: datetime | None = None

    @property
    def powered_off(self) -> bool:
        """True while the instance is down because this orchestrator shut it down."""
        return self._shutdown_at is not None

    def _enter(self, state: ResizeState) -> None:
        self.state = state
        self.history.append(state)

    def resize(
        self,
        instance: Instance,
        target: InstanceType,
        *,
        expand_disk: bool,
        timeout: float,
    ) -> Instance:
        """Move *instance* to plan *target*, then optionally grow its biggest disk.

        Args:
            instance: Current instance state.
            target: Plan to resize to.
            expand_disk: Grow the biggest disk into the new plan's storage.
            timeout: Budget in seconds for each wait.

        Returns:
            The instance as reported after the last step.

        Raises:
            InsufficientCapacityError: The disks do not fit in *target*;
                raised before any call is issued.
            AsyncTimeoutError: A wait ran out of time.
            ProviderOperationFailedError: The provider failed an operation.
        """
        if self.state is not ResizeState.IDLE:
            raise RuntimeError(f"Resize already in progress ({self.state.value})")
        action = EventAction.LINODE_RESIZE.value
        disks = self.client.list_disks(instance.id)
        check_capacity(instance.id, total_disk_size(disks), target.disk, action)

        try:
            self._enter(ResizeState.TYPE_RESIZE_REQUESTED)
            since = instance.updated or instance.created
            rc_logger.info(
                f"Resizing instance {instance.id} from {instance.type} to {target.id}",
                entity_id=instance.id,
                action=action,
                operation="resize",
            )
            self.client.resize_instance(instance.id, target.id)

            self._enter(ResizeState.TYPE_RESIZE_WAITING)
            raise_for_result(self.waiter.wait_for_event(instance.id, action, since, timeout))

            # Allowance of the new plan, read back after the resize finished.
            resized = self.client.get_instance(instance.id)
            if expand_disk:
                resized = self._expand_biggest_disk(resized, timeout)
        finally:
            self._enter(ResizeState.IDLE)
        return resized

    def _expand_biggest_disk(self, instance: Instance, timeout: float) -> Instance:
        disks = self.client.list_disks(instance.id)
        disk = biggest_disk(disks)
        if disk is None:
            rc_logger.info(
                f"Instance {instance.id} has no disks to expand",
                entity_id=instance.id,
                operation="resize",
            )
            return instance
        new_size = expansion_target(disks, disk, instance.specs.disk)
        if new_size <= disk.size:
            return instance
        return self.grow_disk(instance, disk, new_size, timeout, disks=disks)

    def grow_disk(
        self,
        instance: Instance,
        disk: Disk,
        new_size: int,
        timeout: float,
        *,
        disks: Sequence[Disk] | None = None,
    ) -> Instance:
        """Grow *disk* to *new_size* MB, shutting the instance down first if needed.

        Raises:
            InvalidResizeError: *new_size* is smaller than the disk.
            InsufficientCapacityError: The grown disk would not fit the plan.
            AsyncTimeoutError: A wait ran out of time.
            ProviderOperationFailedError: The provider failed an operation.
        """
        if not check_disk_resize(disk, new_size):
            return instance
        action = EventAction.DISK_RESIZE.value
        if disks is None:
            disks = self.client.list_disks(instance.id)
        required = total_disk_size(disks) - disk.size + new_size
        check_capacity(disk.id, required, instance.specs.disk, action)

        standalone = self.state is ResizeState.IDLE
        try:
            self._enter(ResizeState.DISK_EXPANSION_REQUESTED)
            if not (instance.is_offline or self.powered_off):
                self._shutdown(instance, timeout)

            since = disk.updated or disk.created
            rc_logger.info(
                f"Resizing disk {disk.id} ('{disk.label}') from {disk.size} MB to {new_size} MB",
                entity_id=disk.id,
                action=action,
                operation="grow_disk",
            )
            self.client.resize_disk(instance.id, disk.id, new_size)

            self._enter(ResizeState.DISK_EXPANSION_WAITING)
            raise_for_result(
                self.waiter.wait_for_event(
                    instance.id, action, since, timeout, secondary_entity_id=disk.id
                )
            )
        except Exception:
            if not self.defer_boot:
                self.recover_power(instance, timeout)
            raise
        finally:
            if standalone:
                self._enter(ResizeState.IDLE)

        if not self.defer_boot:
            self.restore_power(instance, timeout)
        return self.client.get_instance(instance.id)

    def restore_power(self, instance: Instance, timeout: float, *, wait: bool = True) -> None:
        """Boot an instance this orchestrator shut down; a no-op otherwise.

        Args:
            instance: The instance to boot.
            timeout: Budget in seconds for the boot wait.
            wait: Wait for ``linode_boot``. Only skip this when no further
                mutation follows.
        """
        if self._shutdown_at is None:
            return
        # Lower bound is the provider-side shutdown timestamp.
        since, self._shutdown_at = self._shutdown_at, None
        action = EventAction.LINODE_BOOT.value
        rc_logger.info(
            f"Booting instance {instance.id} after disk resize",
            entity_id=instance.id,
            action=action,
            operation="grow_disk",
        )
        self.client.boot_instance(instance.id)
        if wait:
            raise_for_result(self.waiter.wait_for_event(instance.id, action, since, timeout))

    def recover_power(self, instance: Instance, timeout: float) -> None:
        """Best-effort :meth:`restore_power` while another error is propagating.

        A failed boot is logged; the caller re-raises the original error.
        """
        if not self.powered_off:
            return
        try:
            self.restore_power(instance, timeout)
        except ReconcilerError as exc:
            rc_logger.error(
                f"Instance {instance.id} left offline, boot after failed step failed: {exc}",
                entity_id=instance.id,
                action=EventAction.LINODE_BOOT.value,
                operation="grow_disk",
            )

    def _shutdown(self, instance: Instance, timeout: float) -> None:
        action = EventAction.LINODE_SHUTDOWN.value
        since = instance.updated or instance.created
        rc_logger.info(
            f"Shutting down instance {instance.id} ({instance.status}) for disk resize",
            entity_id=instance.id,
            action=action,
            operation="grow_disk",
        )
        self.client.shutdown_instance(instance.id)
        event = raise_for_result(self.waiter.wait_for_event(instance.id, action, since, timeout))
        self._shutdown_at = event.created
