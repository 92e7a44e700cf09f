"""Create a disk from its declarative spec and wait until it is ready."""

from __future__ import annotations

from reconciler.base.compute import ComputeBlueprint
from reconciler.base.logger import rc_logger
from reconciler.base.models import Disk, DiskSpec, EventAction
from reconciler.engine.waiter import EventWaiter, raise_for_result


def create_disk(
    client: ComputeBlueprint,
    waiter: EventWaiter,
    instance_id: int,
    spec: DiskSpec,
    timeout: float,
) -> Disk:
    """Issue ``create_disk`` and block on its ``disk_create`` event.

    The new disk's own creation timestamp is the lower bound for the event,
    so an earlier disk created on the same instance cannot satisfy the wait.

    Raises:
        ProviderError: The provider rejected the request.
        AsyncTimeoutError: The disk was not ready within *timeout* seconds.
        ProviderOperationFailedError: The provider failed the creation.
    """
    action = EventAction.DISK_CREATE.value
    rc_logger.info(
        f"Creating {spec.filesystem.value} disk '{spec.label}' ({spec.size} MB) "
        f"on instance {instance_id}",
        entity_id=instance_id,
        action=action,
        operation="create_disk",
    )
    disk = client.create_disk(instance_id, spec)
    raise_for_result(
        waiter.wait_for_event(
            instance_id, action, disk.created, timeout, secondary_entity_id=disk.id
        )
    )
    return disk
