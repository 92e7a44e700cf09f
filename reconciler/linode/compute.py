"""Linode API v4 implementation of the Compute blueprint."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, NoReturn

import httpx

from reconciler import __version__
from reconciler.base.compute import ComputeBlueprint
from reconciler.base.config import LinodeConfig
from reconciler.base.exceptions import ProviderError, ResourceNotFoundError
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
from reconciler.base.retry import retry

_ERROR_MAP: dict[int, type[ProviderError]] = {
    404: ResourceNotFoundError,
}

# Rate limiting and gateway errors; the request never reached the backend.
_TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})

_PAGE_SIZE = 100
_EVENT_PAGE_SIZE = 25
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    errors = payload.get("errors") if isinstance(payload, dict) else None
    reasons = [
        err["reason"] for err in errors or [] if isinstance(err, dict) and err.get("reason")
    ]
    return "; ".join(reasons) or f"HTTP {response.status_code}"


def _handle(
    response: httpx.Response,
    msg: str,
    entity_id: int | None = None,
    action: str | None = None,
) -> NoReturn:
    exc = _ERROR_MAP.get(response.status_code, ProviderError)
    raise exc(
        f"{msg}: {_reason(response)}",
        status_code=response.status_code,
        entity_id=entity_id,
        action=action,
    )


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.status_code in _TRANSIENT_STATUSES


def _disk_payload(spec: DiskSpec) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "label": spec.label,
        "filesystem": spec.filesystem.value,
        "size": spec.size,
    }
    if spec.image:
        payload["image"] = spec.image
        if spec.root_pass:
            payload["root_pass"] = spec.root_pass
        if spec.authorized_keys:
            payload["authorized_keys"] = list(spec.authorized_keys)
        if spec.stackscript_id:
            payload["stackscript_id"] = spec.stackscript_id
        if spec.stackscript_data:
            payload["stackscript_data"] = dict(spec.stackscript_data)
    return payload


def _config_payload(spec: ConfigSpec, devices: DeviceMap) -> dict[str, Any]:
    return {
        "label": spec.label,
        "kernel": spec.kernel,
        "run_level": spec.run_level.value,
        "virt_mode": spec.virt_mode.value,
        "root_device": spec.root_device,
        "comments": spec.comments,
        "memory_limit": spec.memory_limit,
        "helpers": spec.helpers.model_dump(),
        "devices": devices.to_api(),
    }


class Compute(ComputeBlueprint):
    """Linode instances, disks, configs and events over HTTPS.

    Attributes:
        config: Validated provider configuration.
        client: httpx client bound to ``{url}/{api_version}``.
    """

    def __init__(self, config: LinodeConfig, client: httpx.Client | None = None) -> None:
        """Initialize the HTTP client.

        Args:
            config: Linode configuration (token, URL, retry delays, ...).
            client: Pre-built httpx client; one is created from *config* if omitted.
        """
        self.config = config
        user_agent = f"linode-reconciler/{__version__}"
        if config.ua_prefix:
            user_agent = f"{config.ua_prefix} {user_agent}"
        self.client = client or httpx.Client(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/json",
                "User-Agent": user_agent,
            },
            timeout=config.http_timeout,
        )
        self._send_with_retry = retry(
            max_attempts=config.max_retries,
            base_delay=config.min_retry_delay_ms / 1000,
            max_delay=config.max_retry_delay_ms / 1000,
            retryable_exceptions=(httpx.TransportError,),
            retry_if=_is_transient,
        )(self._send_once)

    def __enter__(self) -> Compute:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _send(
        self,
        method: str,
        path: str,
        msg: str,
        *,
        entity_id: int | None = None,
        **kwargs: Any,
    ) -> Any:
        try:
            return self._send_with_retry(method, path, msg, entity_id=entity_id, **kwargs)
        except httpx.TransportError as exc:
            raise ProviderError(
                f"{msg}: {type(exc).__name__}: {exc}",
                entity_id=entity_id,
                action=f"{method} {path}",
            ) from exc

    def _send_once(
        self,
        method: str,
        path: str,
        msg: str,
        *,
        entity_id: int | None = None,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        response = self.client.request(method, path, json=body, params=params, headers=headers)
        if response.status_code >= 400:
            _handle(response, msg, entity_id, f"{method} {path}")
        if not response.content:
            return {}
        return response.json()

    def _paginate(self, path: str, msg: str, entity_id: int | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page, pages = 1, 1
        while page <= pages:
            data = self._send(
                "GET", path, msg, entity_id=entity_id,
                params={"page": page, "page_size": _PAGE_SIZE},
            )
            items.extend(data.get("data", []))
            pages = data.get("pages", 1)
            page += 1
        return items

    # -- instances ---------------------------------------------------------

    def get_instance(self, instance_id: int) -> Instance:
        """Fetch one instance.

        Raises:
            ResourceNotFoundError: If the instance does not exist.
        """
        data = self._send(
            "GET", f"/linode/instances/{instance_id}",
            f"Failed to get instance {instance_id}", entity_id=instance_id,
        )
        return Instance.model_validate(data)

    def update_instance(self, instance_id: int, **fields: Any) -> Instance:
        data = self._send(
            "PUT", f"/linode/instances/{instance_id}",
            f"Failed to update instance {instance_id}", entity_id=instance_id, body=fields,
        )
        return Instance.model_validate(data)

    def get_instance_type(self, type_id: str) -> InstanceType:
        data = self._send("GET", f"/linode/types/{type_id}", f"Failed to get type '{type_id}'")
        return InstanceType.model_validate(data)

    def resize_instance(self, instance_id: int, type_id: str) -> None:
        self._send(
            "POST", f"/linode/instances/{instance_id}/resize",
            f"Failed to resize instance {instance_id} to {type_id}",
            entity_id=instance_id, body={"type": type_id},
        )

    def shutdown_instance(self, instance_id: int) -> None:
        self._send(
            "POST", f"/linode/instances/{instance_id}/shutdown",
            f"Failed to shut down instance {instance_id}", entity_id=instance_id,
        )

    def boot_instance(self, instance_id: int, config_id: int | None = None) -> None:
        body = {"config_id": config_id} if config_id else None
        self._send(
            "POST", f"/linode/instances/{instance_id}/boot",
            f"Failed to boot instance {instance_id}", entity_id=instance_id, body=body,
        )

    # -- disks -------------------------------------------------------------

    def list_disks(self, instance_id: int) -> list[Disk]:
        items = self._paginate(
            f"/linode/instances/{instance_id}/disks",
            f"Failed to list disks of instance {instance_id}",
            entity_id=instance_id,
        )
        return [Disk.model_validate(item) for item in items]

    def create_disk(self, instance_id: int, spec: DiskSpec) -> Disk:
        data = self._send(
            "POST", f"/linode/instances/{instance_id}/disks",
            f"Failed to create disk '{spec.label}' on instance {instance_id}",
            entity_id=instance_id, body=_disk_payload(spec),
        )
        return Disk.model_validate(data)

    def resize_disk(self, instance_id: int, disk_id: int, size: int) -> None:
        self._send(
            "POST", f"/linode/instances/{instance_id}/disks/{disk_id}/resize",
            f"Failed to resize disk {disk_id} of instance {instance_id}",
            entity_id=disk_id, body={"size": size},
        )

    # -- configs -----------------------------------------------------------

    def list_configs(self, instance_id: int) -> list[BootConfig]:
        items = self._paginate(
            f"/linode/instances/{instance_id}/configs",
            f"Failed to list configs of instance {instance_id}",
            entity_id=instance_id,
        )
        return [BootConfig.model_validate(item) for item in items]

    def create_config(self, instance_id: int, spec: ConfigSpec, devices: DeviceMap) -> BootConfig:
        data = self._send(
            "POST", f"/linode/instances/{instance_id}/configs",
            f"Failed to create config '{spec.label}' on instance {instance_id}",
            entity_id=instance_id, body=_config_payload(spec, devices),
        )
        return BootConfig.model_validate(data)

    def update_config(
        self, instance_id: int, config_id: int, spec: ConfigSpec, devices: DeviceMap
    ) -> BootConfig:
        data = self._send(
            "PUT", f"/linode/instances/{instance_id}/configs/{config_id}",
            f"Failed to update config {config_id} of instance {instance_id}",
            entity_id=config_id, body=_config_payload(spec, devices),
        )
        return BootConfig.model_validate(data)

    # -- events ------------------------------------------------------------

    def list_events(
        self,
        entity_id: int,
        entity_kind: str,
        action: str,
        since: datetime | None = None,
    ) -> list[Event]:
        """List the newest matching events (one page).

        The filter is applied server-side through the ``X-Filter`` header.
        """
        api_filter: dict[str, Any] = {
            "entity.id": entity_id,
            "entity.type": entity_kind,
            "action": action,
            "+order_by": "created",
            "+order": "desc",
        }
        if since is not None:
            api_filter["created"] = {"+gte": since.strftime(_TIMESTAMP_FORMAT)}
        data = self._send(
            "GET", "/account/events",
            f"Failed to list {action} events for {entity_kind} {entity_id}",
            entity_id=entity_id,
            params={"page_size": _EVENT_PAGE_SIZE},
            headers={"X-Filter": json.dumps(api_filter)},
        )
        return [Event.model_validate(item) for item in data.get("data", [])]
