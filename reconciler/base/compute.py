"""Compute provider blueprint consumed by the reconciliation engine."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from reconciler.base.models import (
    BootConfig,
    ConfigSpec,
    DeviceMap,
    Disk,
    DiskSpec,
    Event,
    Instance,
    InstanceType,
)


class ComputeBlueprint(ABC):
    """Abstract interface over a provider's imperative instance API.

    Mutating calls that the provider completes asynchronously
    (``resize_instance``, ``create_disk``, ``resize_disk``,
    ``shutdown_instance``, ``boot_instance``) return as soon as the
    request is accepted; completion is observed through ``list_events``.
    """

    @abstractmethod
    def get_instance(self, instance_id: int) -> Instance:
        """Return the current state of an instance."""

    @abstractmethod
    def update_instance(self, instance_id: int, **fields: Any) -> Instance:
        """Update mutable scalar attributes (``label``, ``group``)."""

    @abstractmethod
    def get_instance_type(self, type_id: str) -> InstanceType:
        """Return the plan identified by *type_id* and its resource limits."""

    @abstractmethod
    def resize_instance(self, instance_id: int, type_id: str) -> None:
        """Request a plan change. Completion event: ``linode_resize``."""

    @abstractmethod
    def shutdown_instance(self, instance_id: int) -> None:
        """Request a shutdown. Completion event: ``linode_shutdown``."""

    @abstractmethod
    def boot_instance(self, instance_id: int, config_id: int | None = None) -> None:
        """Request a boot, optionally into a specific config. Completion event: ``linode_boot``."""

    @abstractmethod
    def list_disks(self, instance_id: int) -> list[Disk]:
        """List an instance's disks in provider order."""

    @abstractmethod
    def create_disk(self, instance_id: int, spec: DiskSpec) -> Disk:
        """Request a new disk. Completion event: ``disk_create``."""

    @abstractmethod
    def resize_disk(self, instance_id: int, disk_id: int, size: int) -> None:
        """Request a disk resize. Completion event: ``disk_resize``."""

    @abstractmethod
    def list_configs(self, instance_id: int) -> list[BootConfig]:
        """List an instance's boot configurations in provider order."""

    @abstractmethod
    def create_config(self, instance_id: int, spec: ConfigSpec, devices: DeviceMap) -> BootConfig:
        """Create a boot configuration with already-resolved devices."""

    @abstractmethod
    def update_config(
        self, instance_id: int, config_id: int, spec: ConfigSpec, devices: DeviceMap
    ) -> BootConfig:
        """Overwrite a boot configuration with already-resolved devices."""

    @abstractmethod
    def list_events(
        self,
        entity_id: int,
        entity_kind: str,
        action: str,
        since: datetime | None = None,
    ) -> list[Event]:
        """List events for an entity/action, newest first.

        Args:
            entity_id: ID of the primary entity (the instance for disk events).
            entity_kind: Primary entity type (e.g. ``linode``).
            action: Event action (e.g. ``disk_resize``).
            since: Only return events created at or after this time.
        """
