"""
Pydantic models for provider objects and the desired instance shape.

Provider-side models (``Instance``, ``Disk``, ``BootConfig``, ``Event``)
parse Linode API v4 payloads and ignore fields the engine does not use.
Desired-side models (``InstanceSpec`` and friends) describe what the
operator wants; the engine turns the difference into API calls.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Enumerations ──────────────────────────────────────────────────────
class Filesystem(str, Enum):
    RAW = "raw"
    SWAP = "swap"
    EXT3 = "ext3"
    EXT4 = "ext4"
    INITRD = "initrd"


class RunLevel(str, Enum):
    DEFAULT = "default"
    SINGLE = "single"
    BINBASH = "binbash"


class VirtMode(str, Enum):
    PARAVIRT = "paravirt"
    FULLVIRT = "fullvirt"


class EntityKind(str, Enum):
    LINODE = "linode"
    DISK = "disk"
    VOLUME = "volume"


class EventAction(str, Enum):
    """Event actions the engine waits on."""

    LINODE_RESIZE = "linode_resize"
    LINODE_SHUTDOWN = "linode_shutdown"
    LINODE_BOOT = "linode_boot"
    DISK_CREATE = "disk_create"
    DISK_RESIZE = "disk_resize"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"
    NOTIFICATION = "notification"


class DeviceSlot(IntEnum):
    """The eight device slots of a boot configuration, in order."""

    SDA = 0
    SDB = 1
    SDC = 2
    SDD = 3
    SDE = 4
    SDF = 5
    SDG = 6
    SDH = 7

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str | int) -> DeviceSlot:
        """Accept ``"sdb"``, ``"SDB"``, ``1`` or ``DeviceSlot.SDB``."""
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown device slot: {value!r}") from None
        return cls(value)


# ── Device slots ──────────────────────────────────────────────────────
class Device(BaseModel):
    """A single resolved device slot: a disk, a volume, or nothing."""

    model_config = ConfigDict(frozen=True)

    disk_id: int = Field(default=0, ge=0)
    volume_id: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _single_target(self) -> Device:
        if self.disk_id and self.volume_id:
            raise ValueError(
                f"A device slot cannot reference both disk {self.disk_id} "
                f"and volume {self.volume_id}"
            )
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.disk_id or self.volume_id)

    @classmethod
    def from_api(cls, value: Mapping[str, Any] | None) -> Device:
        if not value:
            return EMPTY_DEVICE
        return cls(
            disk_id=value.get("disk_id") or 0,
            volume_id=value.get("volume_id") or 0,
        )

    def to_api(self) -> dict[str, int] | None:
        if self.disk_id:
            return {"disk_id": self.disk_id}
        if self.volume_id:
            return {"volume_id": self.volume_id}
        return None


EMPTY_DEVICE = Device()


class DeviceMap(NamedTuple):
    """Fixed eight-slot device map, indexable by :class:`DeviceSlot`."""

    sda: Device = EMPTY_DEVICE
    sdb: Device = EMPTY_DEVICE
    sdc: Device = EMPTY_DEVICE
    sdd: Device = EMPTY_DEVICE
    sde: Device = EMPTY_DEVICE
    sdf: Device = EMPTY_DEVICE
    sdg: Device = EMPTY_DEVICE
    sdh: Device = EMPTY_DEVICE

    @classmethod
    def from_api(cls, devices: Mapping[str, Any]) -> DeviceMap:
        return cls(*(Device.from_api(devices.get(slot.label)) for slot in DeviceSlot))

    def to_api(self) -> dict[str, dict[str, int] | None]:
        return {slot.label: self[slot].to_api() for slot in DeviceSlot}


# ── Provider objects ──────────────────────────────────────────────────
class InstanceSpecs(BaseModel):
    disk: int = 0
    memory: int = 0
    vcpus: int = 0
    transfer: int = 0


class InstanceAlerts(BaseModel):
    cpu: int = 0
    io: int = 0
    network_in: int = 0
    network_out: int = 0
    transfer_quota: int = 0


class Instance(BaseModel):
    """A Linode instance as reported by the API."""

    id: int
    label: str = ""
    group: str = ""
    type: str | None = None
    region: str = ""
    status: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    ipv4: list[str] = Field(default_factory=list)
    specs: InstanceSpecs = Field(default_factory=InstanceSpecs)
    alerts: InstanceAlerts = Field(default_factory=InstanceAlerts)

    @field_validator("group", mode="before")
    @classmethod
    def _none_group(cls, value: Any) -> Any:
        return value or ""

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def is_offline(self) -> bool:
        # booting, rebooting, provisioning etc. all count as powered on
        return self.status == "offline"


class InstanceType(BaseModel):
    """A plan (e.g. ``g6-standard-1``) and the resources it allows."""

    id: str
    label: str = ""
    disk: int = 0
    memory: int = 0
    vcpus: int = 0
    transfer: int = 0


class Disk(BaseModel):
    id: int
    label: str = ""
    filesystem: Filesystem = Filesystem.RAW
    size: int = 0
    status: str = ""
    created: datetime | None = None
    updated: datetime | None = None

    @property
    def is_swap(self) -> bool:
        return self.filesystem is Filesystem.SWAP


class ConfigHelpers(BaseModel):
    updatedb_disabled: bool = True
    distro: bool = True
    modules_dep: bool = True
    network: bool = True
    devtmpfs_automount: bool = True


class BootConfig(BaseModel):
    """A boot configuration profile attached to an instance."""

    id: int
    label: str = ""
    kernel: str = ""
    run_level: RunLevel = RunLevel.DEFAULT
    virt_mode: VirtMode = VirtMode.PARAVIRT
    root_device: str = "/dev/sda"
    comments: str = ""
    memory_limit: int = 0
    helpers: ConfigHelpers = Field(default_factory=ConfigHelpers)
    devices: DeviceMap = Field(default_factory=DeviceMap)

    @field_validator("kernel", "root_device", "comments", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("devices", mode="before")
    @classmethod
    def _devices_from_api(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return DeviceMap.from_api(value)
        return value


class EventEntity(BaseModel):
    id: int | None = None
    type: str = ""
    label: str | None = None


class Event(BaseModel):
    """An entry from the account event log."""

    id: int
    action: str
    status: str
    created: datetime
    entity: EventEntity | None = None
    secondary_entity: EventEntity | None = None
    percent_complete: int | None = None


# ── Desired shape ─────────────────────────────────────────────────────
class DeviceSpec(BaseModel):
    """A declarative device slot: an explicit ID or a disk label."""

    model_config = ConfigDict(extra="forbid")

    disk_id: int = Field(default=0, ge=0)
    volume_id: int = Field(default=0, ge=0)
    disk_label: str = ""

    @model_validator(mode="after")
    def _single_target(self) -> DeviceSpec:
        if self.disk_id and self.volume_id:
            raise ValueError("Only one of disk_id and volume_id may be set")
        return self


class DiskSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(min_length=1, max_length=48)
    size: int = Field(gt=0, description="Disk size in MB")
    filesystem: Filesystem = Filesystem.EXT4
    image: str | None = None
    root_pass: str | None = None
    authorized_keys: list[str] = Field(default_factory=list)
    stackscript_id: int | None = None
    stackscript_data: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _image_fields(self) -> DiskSpec:
        needs_image = [
            name
            for name in ("root_pass", "authorized_keys", "stackscript_id", "stackscript_data")
            if getattr(self, name)
        ]
        if needs_image and not self.image:
            raise ValueError(f"{', '.join(needs_image)} require an image")
        return self


class ConfigSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(min_length=1, max_length=48)
    kernel: str = "linode/latest-64bit"
    run_level: RunLevel = RunLevel.DEFAULT
    virt_mode: VirtMode = VirtMode.PARAVIRT
    root_device: str = "/dev/sda"
    comments: str = ""
    memory_limit: int = Field(default=0, ge=0)
    helpers: ConfigHelpers = Field(default_factory=ConfigHelpers)
    devices: dict[DeviceSlot, DeviceSpec] = Field(default_factory=dict)

    @field_validator("devices", mode="before")
    @classmethod
    def _slot_keys(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {DeviceSlot.parse(slot): dev for slot, dev in value.items()}
        return value


class InstanceSpec(BaseModel):
    """The desired shape of one instance."""

    model_config = ConfigDict(extra="forbid")

    label: str
    type: str
    region: str
    group: str = ""
    resize_disk: bool = Field(
        default=False,
        description="Grow the biggest disk into the new plan's storage after an upsize",
    )
    disks: list[DiskSpec] = Field(default_factory=list)
    configs: list[ConfigSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_labels(self) -> InstanceSpec:
        for kind, items in (("disk", self.disks), ("config", self.configs)):
            seen: set[str] = set()
            for item in items:
                if item.label in seen:
                    raise ValueError(f"Duplicate {kind} label: {item.label!r}")
                seen.add(item.label)
        if self.resize_disk and self.disks:
            raise ValueError("resize_disk cannot be combined with explicit disks")
        return self
