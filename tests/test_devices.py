"""Tests for device slot resolution."""

import pytest
from pydantic import ValidationError

from factories import make_disk
from reconciler.base.exceptions import LabelNotFoundError
from reconciler.base.models import (
    EMPTY_DEVICE,
    ConfigSpec,
    Device,
    DeviceMap,
    DeviceSlot,
    DeviceSpec,
)
from reconciler.engine.devices import (
    build_label_map,
    expand_device_map,
    referenced_labels,
    resolve_device,
)


@pytest.fixture
def disks():
    return [make_disk(11, "boot", 20000), make_disk(12, "swap", 256, "swap")]


class TestBuildLabelMap:
    def test_maps_labels(self, disks):
        assert build_label_map(disks) == {"boot": 11, "swap": 12}

    def test_duplicate_label_first_wins(self):
        dupes = [make_disk(5, "data", 100), make_disk(6, "data", 200)]
        assert build_label_map(dupes) == {"data": 5}

    def test_empty(self):
        assert build_label_map([]) == {}


class TestResolveDevice:
    def test_label_lookup(self):
        device = resolve_device(DeviceSpec(disk_label="boot"), {"boot": 11})
        assert device == Device(disk_id=11)

    def test_explicit_disk_id_wins_over_label(self):
        spec = DeviceSpec(disk_id=99, disk_label="boot")
        assert resolve_device(spec, {"boot": 11}).disk_id == 99

    def test_volume(self):
        device = resolve_device(DeviceSpec(volume_id=7), {})
        assert device.volume_id == 7
        assert device.disk_id == 0

    def test_empty_spec(self):
        assert resolve_device(DeviceSpec(), {"boot": 11}) is EMPTY_DEVICE

    def test_unknown_label(self):
        with pytest.raises(LabelNotFoundError) as info:
            resolve_device(
                DeviceSpec(disk_label="root"), {"boot": 11},
                instance_id=100, config_label="main",
            )
        err = info.value
        assert err.label == "root"
        assert err.entity_id == 100
        assert err.config_label == "main"
        assert err.action == "config_update"
        assert "'root'" in str(err)

    def test_unknown_label_carries_action(self):
        with pytest.raises(LabelNotFoundError) as info:
            resolve_device(
                DeviceSpec(disk_label="root"), {}, instance_id=100, action="config_create",
            )
        assert info.value.action == "config_create"


class TestExpandDeviceMap:
    def test_resolves_and_fills_empty_slots(self, disks):
        label_map = build_label_map(disks)
        specs = {
            DeviceSlot.SDA: DeviceSpec(disk_label="boot"),
            DeviceSlot.SDB: DeviceSpec(disk_label="swap"),
            DeviceSlot.SDC: DeviceSpec(volume_id=42),
        }
        result = expand_device_map(specs, label_map)
        assert isinstance(result, DeviceMap)
        assert result.sda.disk_id == 11
        assert result.sdb.disk_id == 12
        assert result.sdc.volume_id == 42
        assert all(result[slot].is_empty for slot in DeviceSlot if slot > DeviceSlot.SDC)

    def test_idempotent(self, disks):
        label_map = build_label_map(disks)
        specs = {DeviceSlot.SDA: DeviceSpec(disk_label="boot")}
        assert expand_device_map(specs, label_map) == expand_device_map(specs, label_map)

    def test_string_slot_keys(self, disks):
        config = ConfigSpec(label="main", devices={"sdb": {"disk_label": "boot"}})
        result = expand_device_map(config.devices, build_label_map(disks))
        assert result.sda is EMPTY_DEVICE
        assert result.sdb.disk_id == 11

    def test_one_bad_label_fails_the_map(self, disks):
        specs = {
            DeviceSlot.SDA: DeviceSpec(disk_label="boot"),
            DeviceSlot.SDB: DeviceSpec(disk_label="missing"),
        }
        with pytest.raises(LabelNotFoundError):
            expand_device_map(specs, build_label_map(disks))


class TestReferencedLabels:
    def test_skips_explicit_ids(self):
        specs = {
            DeviceSlot.SDA: DeviceSpec(disk_label="boot"),
            DeviceSlot.SDB: DeviceSpec(disk_id=3, disk_label="ignored"),
            DeviceSlot.SDC: DeviceSpec(),
        }
        assert referenced_labels(specs) == {"boot"}


class TestDeviceModels:
    def test_disk_and_volume_conflict(self):
        with pytest.raises(ValidationError):
            Device(disk_id=1, volume_id=2)
        with pytest.raises(ValidationError):
            DeviceSpec(disk_id=1, volume_id=2)

    def test_device_map_api_round_trip(self):
        payload = {"sda": {"disk_id": 11, "volume_id": None}, "sdb": None, "sdc": {"volume_id": 4}}
        devices = DeviceMap.from_api(payload)
        assert devices.sda.disk_id == 11
        assert devices.sdb is EMPTY_DEVICE
        out = devices.to_api()
        assert out["sda"] == {"disk_id": 11}
        assert out["sdc"] == {"volume_id": 4}
        assert out["sdh"] is None

    def test_unknown_slot(self):
        with pytest.raises(ValueError, match="Unknown device slot"):
            DeviceSlot.parse("sdz")
