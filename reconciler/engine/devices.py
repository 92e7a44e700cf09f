"""Resolve label-addressed device slots to provider IDs.

Boot configurations may name their disks by label because disk IDs only
exist once the disks have been created. The label→ID map is built from
the instance's disk list immediately before resolution and is never
cached between passes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from reconciler.base.exceptions import LabelNotFoundError
from reconciler.base.models import (
    EMPTY_DEVICE,
    Device,
    DeviceMap,
    DeviceSlot,
    DeviceSpec,
    Disk,
)


def build_label_map(disks: Iterable[Disk]) -> dict[str, int]:
    """Map disk labels to disk IDs.

    Labels are unique per instance on the provider side. If a duplicate
    does show up, the first disk in provider order wins.
    """
    label_map: dict[str, int] = {}
    for disk in disks:
        label_map.setdefault(disk.label, disk.id)
    return label_map


def resolve_device(
    spec: DeviceSpec,
    label_map: Mapping[str, int],
    *,
    instance_id: int | None = None,
    config_label: str | None = None,
    action: str = "config_update",
) -> Device:
    """Turn one declarative slot into a concrete :class:`Device`.

    An explicit disk or volume ID is used as-is. Otherwise ``disk_label``
    is looked up in *label_map*. A slot with neither is empty.

    Raises:
        LabelNotFoundError: If ``disk_label`` is not in *label_map*.
    """
    if spec.disk_id:
        return Device(disk_id=spec.disk_id)
    if spec.volume_id:
        return Device(volume_id=spec.volume_id)
    if spec.disk_label:
        disk_id = label_map.get(spec.disk_label)
        if disk_id is None:
            raise LabelNotFoundError(
                spec.disk_label, entity_id=instance_id, config_label=config_label,
                action=action,
            )
        return Device(disk_id=disk_id)
    return EMPTY_DEVICE


def expand_device_map(
    specs: Mapping[DeviceSlot, DeviceSpec],
    label_map: Mapping[str, int],
    *,
    instance_id: int | None = None,
    config_label: str | None = None,
    action: str = "config_update",
) -> DeviceMap:
    """Resolve every slot of a boot configuration.

    Slots missing from *specs* are empty. Each slot resolves on its own.
    """
    slots = [EMPTY_DEVICE] * len(DeviceSlot)
    for slot, spec in specs.items():
        slots[DeviceSlot.parse(slot)] = resolve_device(
            spec, label_map, instance_id=instance_id, config_label=config_label,
            action=action,
        )
    return DeviceMap(*slots)


def referenced_labels(specs: Mapping[DeviceSlot, DeviceSpec]) -> set[str]:
    """Disk labels a device map would need to resolve."""
    return {
        spec.disk_label
        for spec in specs.values()
        if spec.disk_label and not (spec.disk_id or spec.volume_id)
    }
