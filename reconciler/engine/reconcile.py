"""Reconcile a desired instance shape against the provider.

A pass reads the current state, plans the changes (validating everything
that can be validated without mutating anything), then applies them in a
fixed order:

1. rename / regroup the instance;
2. resize the plan, optionally expanding the biggest disk;
3. create missing disks;
4. grow disks whose desired size is larger;
5. resolve device labels against fresh disk IDs and create or update
   boot configurations.

Each asynchronous step is waited on before the next one is issued. Nothing
is retried here: if a pass fails the caller may simply run it again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reconciler.base.async_support import AsyncMixin
from reconciler.base.compute import ComputeBlueprint
from reconciler.base.config import Timeouts
from reconciler.base.exceptions import LabelNotFoundError, ReconcilerError
from reconciler.base.logger import rc_logger
from reconciler.base.models import (
    BootConfig,
    ConfigSpec,
    DeviceMap,
    Disk,
    DiskSpec,
    EventAction,
    Instance,
    InstanceSpec,
    InstanceType,
)
from reconciler.engine.devices import build_label_map, expand_device_map, referenced_labels
from reconciler.engine.disks import create_disk
from reconciler.engine.flatten import flatten_instance
from reconciler.engine.resize import ResizeOrchestrator, ResizeState
from reconciler.engine.sizing import check_capacity, check_disk_resize, total_disk_size
from reconciler.engine.waiter import EventWaiter


@dataclass
class InstanceState:
    """Provider-observed state of one instance."""

    instance: Instance
    disks: list[Disk]
    configs: list[BootConfig]


@dataclass
class DiskGrowth:
    disk: Disk
    new_size: int


@dataclass
class ChangeSet:
    """What a pass will do. Building one issues no mutating calls."""

    instance_id: int
    updates: dict[str, Any] = field(default_factory=dict)
    target_type: InstanceType | None = None
    expand_disk: bool = False
    create_disks: list[DiskSpec] = field(default_factory=list)
    grow_disks: list[DiskGrowth] = field(default_factory=list)
    create_configs: list[ConfigSpec] = field(default_factory=list)
    update_configs: list[ConfigSpec] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (
            self.updates
            or self.target_type
            or self.create_disks
            or self.grow_disks
            or self.create_configs
            or self.update_configs
        )

    def summary(self) -> list[str]:
        lines = [f"update {key} -> {value!r}" for key, value in self.updates.items()]
        if self.target_type is not None:
            lines.append(f"resize to {self.target_type.id} ({self.target_type.disk} MB disk)")
            if self.expand_disk:
                lines.append("expand biggest disk into the new plan")
        lines += [f"create disk {spec.label!r} ({spec.size} MB)" for spec in self.create_disks]
        lines += [
            f"grow disk {g.disk.label!r} {g.disk.size} -> {g.new_size} MB" for g in self.grow_disks
        ]
        lines += [f"create config {spec.label!r}" for spec in self.create_configs]
        lines += [f"update config {spec.label!r}" for spec in self.update_configs]
        return lines


@dataclass
class ReconcileResult:
    state: dict[str, Any]
    actions: list[str]
    changes: ChangeSet


def _first_by_label(items: list[Any]) -> dict[str, Any]:
    by_label: dict[str, Any] = {}
    for item in items:
        by_label.setdefault(item.label, item)
    return by_label


def _config_action(existing: BootConfig | None) -> str:
    return "config_create" if existing is None else "config_update"


def config_matches(config: BootConfig, spec: ConfigSpec, devices: DeviceMap) -> bool:
    """True when *config* already has the fields *spec* and *devices* describe."""
    return (
        config.kernel == spec.kernel
        and config.run_level == spec.run_level
        and config.virt_mode == spec.virt_mode
        and config.root_device == spec.root_device
        and config.comments == spec.comments
        and config.memory_limit == spec.memory_limit
        and config.helpers == spec.helpers
        and tuple(config.devices) == tuple(devices)
    )


class InstanceReconciler(AsyncMixin):
    """Turns a desired :class:`InstanceSpec` plus observed state into provider calls.

    Attributes:
        client: Provider implementation.
        waiter: Event waiter shared by every step of a pass.
        skip_instance_ready_poll: Do not wait for the boot that ends a pass
            after a disk resize shut the instance down.
    """

    def __init__(
        self,
        client: ComputeBlueprint,
        waiter: EventWaiter,
        *,
        skip_instance_ready_poll: bool = False,
    ) -> None:
        self.client = client
        self.waiter = waiter
        self.skip_instance_ready_poll = skip_instance_ready_poll

    def observe(self, instance_id: int) -> InstanceState:
        """Read an instance with its disks and boot configurations."""
        return InstanceState(
            instance=self.client.get_instance(instance_id),
            disks=self.client.list_disks(instance_id),
            configs=self.client.list_configs(instance_id),
        )

    def plan(self, desired: InstanceSpec, current: InstanceState) -> ChangeSet:
        """Work out the changes for a pass and validate them.

        Only read calls are made (``get_instance_type`` on a plan change).

        Raises:
            InvalidResizeError: A desired disk is smaller than the existing one.
            InsufficientCapacityError: The disks would not fit the plan.
            LabelNotFoundError: A device slot names a disk that neither exists
                nor is about to be created.
            ReconcilerError: The region differs (migration is not supported).
        """
        instance = current.instance
        changes = ChangeSet(instance_id=instance.id, expand_disk=desired.resize_disk)

        if desired.region != instance.region:
            raise ReconcilerError(
                f"Instance {instance.id} is in {instance.region}; moving it to "
                f"{desired.region} requires a migration",
                entity_id=instance.id,
                action="linode_migrate",
            )
        if desired.label != instance.label:
            changes.updates["label"] = desired.label
        if desired.group != instance.group:
            changes.updates["group"] = desired.group

        used = total_disk_size(current.disks)
        allowance = instance.specs.disk
        if desired.type != instance.type:
            changes.target_type = self.client.get_instance_type(desired.type)
            allowance = changes.target_type.disk
            check_capacity(instance.id, used, allowance, EventAction.LINODE_RESIZE.value)

        disks_by_label = _first_by_label(current.disks)
        required = used
        for spec in desired.disks:
            disk = disks_by_label.get(spec.label)
            if disk is None:
                changes.create_disks.append(spec)
                required += spec.size
            elif check_disk_resize(disk, spec.size):
                changes.grow_disks.append(DiskGrowth(disk=disk, new_size=spec.size))
                required += spec.size - disk.size
        if changes.create_disks or changes.grow_disks:
            action = EventAction.DISK_CREATE if changes.create_disks else EventAction.DISK_RESIZE
            check_capacity(instance.id, required, allowance, action.value)

        known_labels = set(disks_by_label) | {spec.label for spec in desired.disks}
        label_map = build_label_map(current.disks)
        configs_by_label = _first_by_label(current.configs)
        for spec in desired.configs:
            wanted = referenced_labels(spec.devices)
            existing = configs_by_label.get(spec.label)
            missing = sorted(wanted - known_labels)
            if missing:
                raise LabelNotFoundError(
                    missing[0], entity_id=instance.id, config_label=spec.label,
                    action=_config_action(existing),
                )
            if existing is None:
                changes.create_configs.append(spec)
            elif not wanted <= set(label_map):
                # Depends on a disk that does not exist yet.
                changes.update_configs.append(spec)
            else:
                devices = expand_device_map(
                    spec.devices, label_map, instance_id=instance.id, config_label=spec.label,
                    action=_config_action(existing),
                )
                if not config_matches(existing, spec, devices):
                    changes.update_configs.append(spec)
        return changes

    def reconcile(
        self,
        desired: InstanceSpec,
        current: InstanceState,
        timeouts: Timeouts | None = None,
    ) -> ReconcileResult:
        """Run one reconciliation pass.

        Args:
            desired: The shape to converge to.
            current: State observed before the pass (see :meth:`observe`).
            timeouts: Wait budgets; ``create`` bounds disk creation, ``update``
                bounds resizes and power cycles.

        Returns:
            The flattened state after the pass and the actions performed.

        Raises:
            ReconcilerError: Any planning, provider or wait failure. The pass
                stops at the failing step.
        """
        timeouts = timeouts or Timeouts()
        instance = current.instance
        try:
            changes = self.plan(desired, current)
            actions = self._apply(desired, instance, changes, timeouts)
        except ReconcilerError as exc:
            rc_logger.error(
                f"Reconciliation of instance {instance.id} failed: {exc}",
                entity_id=exc.entity_id,
                action=exc.action,
                operation="reconcile",
            )
            raise

        final = self.observe(instance.id)
        state = flatten_instance(final.instance, final.disks, final.configs, desired)
        rc_logger.info(
            f"Reconciled instance {instance.id} with {len(actions)} action(s)",
            entity_id=instance.id,
            operation="reconcile",
        )
        return ReconcileResult(state=state, actions=actions, changes=changes)

    def _apply(
        self,
        desired: InstanceSpec,
        instance: Instance,
        changes: ChangeSet,
        timeouts: Timeouts,
    ) -> list[str]:
        orchestrator = ResizeOrchestrator(self.client, self.waiter, defer_boot=True)
        try:
            actions = self._apply_steps(orchestrator, instance, changes, timeouts)
        except Exception:
            orchestrator.recover_power(instance, timeouts.update)
            raise
        if orchestrator.powered_off:
            # Last mutation of the pass, so the boot wait may be skipped.
            orchestrator.restore_power(
                instance, timeouts.update, wait=not self.skip_instance_ready_poll
            )
            actions.append("boot_instance")
        return actions

    def _apply_steps(
        self,
        orchestrator: ResizeOrchestrator,
        instance: Instance,
        changes: ChangeSet,
        timeouts: Timeouts,
    ) -> list[str]:
        actions: list[str] = []
        if changes.updates:
            rc_logger.info(
                f"Updating instance {instance.id}: {', '.join(sorted(changes.updates))}",
                entity_id=instance.id,
                operation="reconcile",
            )
            instance = self.client.update_instance(instance.id, **changes.updates)
            actions.append("update_instance")

        if changes.target_type is not None:
            instance = orchestrator.resize(
                instance,
                changes.target_type,
                expand_disk=changes.expand_disk,
                timeout=timeouts.update,
            )
            actions.append(f"resize_instance:{changes.target_type.id}")
            if ResizeState.DISK_EXPANSION_WAITING in orchestrator.history:
                actions.append("expand_disk")

        for spec in changes.create_disks:
            create_disk(self.client, self.waiter, instance.id, spec, timeouts.create)
            actions.append(f"create_disk:{spec.label}")

        for growth in changes.grow_disks:
            instance = orchestrator.grow_disk(
                instance, growth.disk, growth.new_size, timeouts.update
            )
            actions.append(f"resize_disk:{growth.disk.label}")

        if changes.create_configs or changes.update_configs:
            actions += self._apply_configs(instance.id, changes)
        return actions

    def _apply_configs(self, instance_id: int, changes: ChangeSet) -> list[str]:
        actions: list[str] = []
        # Disk IDs are only known now; the map is rebuilt from a fresh listing.
        label_map = build_label_map(self.client.list_disks(instance_id))
        existing = _first_by_label(self.client.list_configs(instance_id))

        for spec in changes.create_configs + changes.update_configs:
            config = existing.get(spec.label)
            devices = expand_device_map(
                spec.devices, label_map, instance_id=instance_id, config_label=spec.label,
                action=_config_action(config),
            )
            if config is None:
                rc_logger.info(
                    f"Creating config '{spec.label}' on instance {instance_id}",
                    entity_id=instance_id,
                    operation="reconcile",
                )
                self.client.create_config(instance_id, spec, devices)
                actions.append(f"create_config:{spec.label}")
            elif not config_matches(config, spec, devices):
                rc_logger.info(
                    f"Updating config {config.id} ('{spec.label}') on instance {instance_id}",
                    entity_id=config.id,
                    operation="reconcile",
                )
                self.client.update_config(instance_id, config.id, spec, devices)
                actions.append(f"update_config:{spec.label}")
        return actions
