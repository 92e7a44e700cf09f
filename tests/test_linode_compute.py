"""Tests for the Linode API v4 compute client."""

import json
from datetime import datetime
from unittest.mock import MagicMock

import httpx
import pytest

from reconciler.base.config import LinodeConfig
from reconciler.base.exceptions import ProviderError, ResourceNotFoundError
from reconciler.base.models import DeviceMap, Device, DiskSpec, ConfigSpec
from reconciler.linode.compute import Compute

INSTANCE = {
    "id": 123,
    "label": "web",
    "group": None,
    "type": "g6-nanode-1",
    "region": "us-east",
    "status": "running",
    "created": "2024-01-01T12:00:00",
    "updated": "2024-01-01T12:05:00",
    "ipv4": ["203.0.113.10"],
    "specs": {"disk": 25600, "memory": 1024, "vcpus": 1, "transfer": 1000},
}


def _resp(status=200, payload=None):
    return httpx.Response(status, json=payload if payload is not None else {})


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def compute(http):
    cfg = LinodeConfig(token="tok", min_retry_delay_ms=0, max_retry_delay_ms=0)
    return Compute(cfg, client=http)


class TestInstances:
    def test_get_instance(self, compute, http):
        http.request.return_value = _resp(200, INSTANCE)
        inst = compute.get_instance(123)
        assert inst.id == 123
        assert inst.group == ""
        assert inst.is_running
        assert inst.updated == datetime(2024, 1, 1, 12, 5)
        http.request.assert_called_once_with(
            "GET", "/linode/instances/123", json=None, params=None, headers=None
        )

    def test_not_found(self, compute, http):
        http.request.return_value = _resp(404, {"errors": [{"reason": "Not found"}]})
        with pytest.raises(ResourceNotFoundError) as info:
            compute.get_instance(999)
        assert info.value.status_code == 404
        assert info.value.entity_id == 999
        assert "Not found" in str(info.value)
        assert info.value.action == "GET /linode/instances/999"
        assert http.request.call_count == 1

    def test_bad_request_not_retried(self, compute, http):
        http.request.return_value = _resp(
            400, {"errors": [{"reason": "Invalid type"}, {"reason": "Try again"}]}
        )
        with pytest.raises(ProviderError, match="Invalid type; Try again"):
            compute.resize_instance(123, "bogus")
        assert http.request.call_count == 1

    def test_rate_limit_retried(self, compute, http):
        http.request.side_effect = [_resp(429), _resp(200, {})]
        compute.resize_instance(123, "g6-standard-2")
        assert http.request.call_count == 2
        args, kwargs = http.request.call_args
        assert args == ("POST", "/linode/instances/123/resize")
        assert kwargs["json"] == {"type": "g6-standard-2"}

    def test_transport_error_retried(self, compute, http):
        http.request.side_effect = [httpx.ConnectError("reset"), _resp(200, {})]
        compute.shutdown_instance(123)
        assert http.request.call_count == 2

    def test_retries_exhausted(self, compute, http):
        http.request.return_value = _resp(503)
        with pytest.raises(ProviderError) as info:
            compute.boot_instance(123)
        assert info.value.status_code == 503
        assert http.request.call_count == 3

    def test_transport_retries_exhausted(self, compute, http):
        http.request.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(ProviderError) as info:
            compute.shutdown_instance(123)
        err = info.value
        assert err.entity_id == 123
        assert err.action == "POST /linode/instances/123/shutdown"
        assert err.status_code is None
        assert isinstance(err.__cause__, httpx.ConnectError)
        assert http.request.call_count == 3

    def test_boot_with_config(self, compute, http):
        http.request.return_value = _resp(200, {})
        compute.boot_instance(123, config_id=7)
        assert http.request.call_args.kwargs["json"] == {"config_id": 7}

    def test_update_instance(self, compute, http):
        http.request.return_value = _resp(200, {**INSTANCE, "label": "api"})
        inst = compute.update_instance(123, label="api")
        assert inst.label == "api"
        assert http.request.call_args.kwargs["json"] == {"label": "api"}

    def test_get_type(self, compute, http):
        http.request.return_value = _resp(
            200, {"id": "g6-standard-2", "label": "Linode 4GB", "disk": 81920, "memory": 4096}
        )
        plan = compute.get_instance_type("g6-standard-2")
        assert plan.disk == 81920


class TestDisks:
    def test_list_paginates(self, compute, http):
        http.request.side_effect = [
            _resp(200, {"data": [{"id": 1, "label": "boot", "size": 25344,
                                  "filesystem": "ext4"}], "page": 1, "pages": 2}),
            _resp(200, {"data": [{"id": 2, "label": "swap", "size": 256,
                                  "filesystem": "swap"}], "page": 2, "pages": 2}),
        ]
        disks = compute.list_disks(123)
        assert [d.label for d in disks] == ["boot", "swap"]
        assert disks[1].is_swap
        pages = [c.kwargs["params"]["page"] for c in http.request.call_args_list]
        assert pages == [1, 2]

    def test_create_disk_payload(self, compute, http):
        http.request.return_value = _resp(
            200, {"id": 5, "label": "root", "size": 4000, "filesystem": "ext4",
                  "created": "2024-01-01T12:00:00"}
        )
        spec = DiskSpec(
            label="root", size=4000, image="linode/debian12", root_pass="pw",
            authorized_keys=["ssh-ed25519 AAAA"],
        )
        disk = compute.create_disk(123, spec)
        assert disk.id == 5
        assert http.request.call_args.kwargs["json"] == {
            "label": "root",
            "filesystem": "ext4",
            "size": 4000,
            "image": "linode/debian12",
            "root_pass": "pw",
            "authorized_keys": ["ssh-ed25519 AAAA"],
        }

    def test_blank_disk_payload(self, compute, http):
        http.request.return_value = _resp(200, {"id": 6, "label": "swap"})
        compute.create_disk(123, DiskSpec(label="swap", size=512, filesystem="swap"))
        assert http.request.call_args.kwargs["json"] == {
            "label": "swap", "filesystem": "swap", "size": 512,
        }

    def test_resize_disk(self, compute, http):
        http.request.return_value = _resp(200, {})
        compute.resize_disk(123, 5, 51200)
        args, kwargs = http.request.call_args
        assert args == ("POST", "/linode/instances/123/disks/5/resize")
        assert kwargs["json"] == {"size": 51200}

    def test_resize_disk_error_names_disk(self, compute, http):
        http.request.return_value = _resp(400, {"errors": [{"reason": "Linode busy"}]})
        with pytest.raises(ProviderError) as info:
            compute.resize_disk(123, 5, 51200)
        assert info.value.entity_id == 5


class TestConfigs:
    def test_list_configs(self, compute, http):
        http.request.return_value = _resp(200, {"data": [{
            "id": 9, "label": "main", "kernel": "linode/latest-64bit",
            "root_device": "/dev/sda", "comments": None, "memory_limit": 0,
            "devices": {"sda": {"disk_id": 1, "volume_id": None}, "sdb": None},
        }], "pages": 1})
        (config,) = compute.list_configs(123)
        assert config.devices.sda.disk_id == 1
        assert config.devices.sdb.is_empty
        assert config.comments == ""

    def test_create_config_payload(self, compute, http):
        http.request.return_value = _resp(200, {"id": 9, "label": "main"})
        devices = DeviceMap(sda=Device(disk_id=1), sdc=Device(volume_id=3))
        compute.create_config(123, ConfigSpec(label="main"), devices)
        body = http.request.call_args.kwargs["json"]
        assert body["label"] == "main"
        assert body["kernel"] == "linode/latest-64bit"
        assert body["devices"]["sda"] == {"disk_id": 1}
        assert body["devices"]["sdb"] is None
        assert body["devices"]["sdc"] == {"volume_id": 3}
        assert body["helpers"]["network"] is True

    def test_update_config_path(self, compute, http):
        http.request.return_value = _resp(200, {"id": 9, "label": "main"})
        compute.update_config(123, 9, ConfigSpec(label="main"), DeviceMap())
        args, _ = http.request.call_args
        assert args == ("PUT", "/linode/instances/123/configs/9")


class TestEvents:
    def test_filter_header(self, compute, http):
        http.request.return_value = _resp(200, {"data": [{
            "id": 77, "action": "linode_resize", "status": "finished",
            "created": "2024-01-01T12:06:00",
            "entity": {"id": 123, "type": "linode", "label": "web"},
            "secondary_entity": None,
        }]})
        events = compute.list_events(123, "linode", "linode_resize", datetime(2024, 1, 1, 12, 5))
        assert events[0].id == 77
        kwargs = http.request.call_args.kwargs
        assert kwargs["params"] == {"page_size": 25}
        api_filter = json.loads(kwargs["headers"]["X-Filter"])
        assert api_filter == {
            "entity.id": 123,
            "entity.type": "linode",
            "action": "linode_resize",
            "+order_by": "created",
            "+order": "desc",
            "created": {"+gte": "2024-01-01T12:05:00"},
        }

    def test_no_since(self, compute, http):
        http.request.return_value = _resp(200, {"data": []})
        assert compute.list_events(123, "linode", "linode_boot") == []
        api_filter = json.loads(http.request.call_args.kwargs["headers"]["X-Filter"])
        assert "created" not in api_filter


class TestClientSetup:
    def test_headers_and_base_url(self, monkeypatch):
        monkeypatch.delenv("LINODE_URL", raising=False)
        monkeypatch.delenv("LINODE_API_VERSION", raising=False)
        cfg = LinodeConfig(token="tok", ua_prefix="terraform")
        with Compute(cfg) as compute:
            headers = compute.client.headers
            assert headers["Authorization"] == "Bearer tok"
            assert headers["User-Agent"].startswith("terraform linode-reconciler/")
            assert str(compute.client.base_url).rstrip("/") == "https://api.linode.com/v4"

    def test_empty_body(self, compute, http):
        http.request.return_value = httpx.Response(200, content=b"")
        compute.shutdown_instance(123)
