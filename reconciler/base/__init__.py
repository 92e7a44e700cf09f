"""Provider blueprint, models and core utilities.

Import :class:`ComputeBlueprint` to implement another provider, or the
models to build desired shapes programmatically.
"""

from .compute import ComputeBlueprint
from .config import LinodeConfig, Timeouts
from .models import (
    BootConfig,
    ConfigHelpers,
    ConfigSpec,
    Device,
    DeviceMap,
    DeviceSlot,
    DeviceSpec,
    Disk,
    DiskSpec,
    EntityKind,
    Event,
    EventAction,
    EventStatus,
    Filesystem,
    Instance,
    InstanceSpec,
    InstanceType,
)


__all__ = [
    "ComputeBlueprint",
    "LinodeConfig",
    "Timeouts",
    "BootConfig",
    "ConfigHelpers",
    "ConfigSpec",
    "Device",
    "DeviceMap",
    "DeviceSlot",
    "DeviceSpec",
    "Disk",
    "DiskSpec",
    "EntityKind",
    "Event",
    "EventAction",
    "EventStatus",
    "Filesystem",
    "Instance",
    "InstanceSpec",
    "InstanceType",
]
