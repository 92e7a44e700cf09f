"""Flatten provider state into the declarative attribute shape.

Every function here is pure and total: no provider calls, no exceptions.
Missing optional provider fields come out as zero values.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from typing import Any

from reconciler.base.models import (
    BootConfig,
    Device,
    DeviceSlot,
    Disk,
    DiskSpec,
    Instance,
    InstanceSpec,
)
from reconciler.engine.secrets import root_password_state, ssh_key_state

_PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)


def flatten_specs(instance: Instance) -> dict[str, int]:
    specs = instance.specs
    return {
        "vcpus": specs.vcpus,
        "disk": specs.disk,
        "memory": specs.memory,
        "transfer": specs.transfer,
    }


def flatten_alerts(instance: Instance) -> dict[str, int]:
    alerts = instance.alerts
    return {
        "cpu": alerts.cpu,
        "io": alerts.io,
        "network_in": alerts.network_in,
        "network_out": alerts.network_out,
        "transfer_quota": alerts.transfer_quota,
    }


def flatten_disks(disks: Iterable[Disk]) -> tuple[list[dict[str, Any]], int]:
    """Return one record per disk and the summed size of all swap disks."""
    records: list[dict[str, Any]] = []
    swap_size = 0
    for disk in disks:
        if disk.is_swap:
            swap_size += disk.size
        records.append(
            {
                "size": disk.size,
                "label": disk.label,
                "filesystem": disk.filesystem.value,
            }
        )
    return records, swap_size


def flatten_config_device(device: Device | None) -> dict[str, int]:
    if device is None:
        return {"disk_id": 0, "volume_id": 0}
    return {"disk_id": device.disk_id, "volume_id": device.volume_id}


def flatten_configs(configs: Iterable[BootConfig]) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for config in configs:
        helpers = config.helpers
        records.append(
            {
                "kernel": config.kernel,
                "run_level": config.run_level.value,
                "virt_mode": config.virt_mode.value,
                "root_device": config.root_device,
                "comments": config.comments,
                "memory_limit": config.memory_limit,
                "label": config.label,
                "helpers": {
                    "updatedb_disabled": helpers.updatedb_disabled,
                    "distro": helpers.distro,
                    "modules_dep": helpers.modules_dep,
                    "network": helpers.network,
                    "devtmpfs_automount": helpers.devtmpfs_automount,
                },
                "devices": {
                    slot.label: flatten_config_device(config.devices[slot])
                    for slot in DeviceSlot
                },
            }
        )
    return records


def private_ip(address: str) -> bool:
    """True for RFC1918 IPv4 addresses; False for anything else, including garbage."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in _PRIVATE_NETWORKS)


def _write_only_fields(spec: DiskSpec) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if spec.image:
        fields["image"] = spec.image
    if spec.root_pass:
        fields["root_pass"] = root_password_state(spec.root_pass)
    if spec.authorized_keys:
        fields["authorized_keys"] = ssh_key_state(spec.authorized_keys)
    if spec.stackscript_id:
        fields["stackscript_id"] = spec.stackscript_id
    return fields


def flatten_instance(
    instance: Instance,
    disks: Iterable[Disk],
    configs: Iterable[BootConfig],
    desired: InstanceSpec | None = None,
) -> dict[str, Any]:
    """Assemble the full declarative view of an instance.

    When *desired* is given, write-only disk fields the provider cannot
    report back (image, hashed root password and keys) are carried over
    onto the disk record with the same label.
    """
    disk_records, swap_size = flatten_disks(disks)
    if desired is not None:
        by_label = {spec.label: spec for spec in desired.disks}
        for record in disk_records:
            spec = by_label.get(record["label"])
            if spec is not None:
                record.update(_write_only_fields(spec))

    private = [addr for addr in instance.ipv4 if private_ip(addr)]
    public = [addr for addr in instance.ipv4 if not private_ip(addr)]
    return {
        "id": instance.id,
        "label": instance.label,
        "group": instance.group,
        "type": instance.type or "",
        "region": instance.region,
        "status": instance.status,
        "ip_address": public[0] if public else "",
        "private_ip_address": private[0] if private else "",
        "specs": flatten_specs(instance),
        "alerts": flatten_alerts(instance),
        "disks": disk_records,
        "swap_size": swap_size,
        "configs": flatten_configs(configs),
    }
