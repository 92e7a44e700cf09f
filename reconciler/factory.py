"""Provider factory.

Provides :func:`provider_factory`, the entry point for creating a provider
client from a raw config dict, and :func:`build_reconciler`, which wires
that client to an event waiter and a reconciler using the provider's
poll and readiness settings.
"""

from typing import Any, Literal

from reconciler.base import ComputeBlueprint
from reconciler.base.config import validate_config
from reconciler.engine.reconcile import InstanceReconciler
from reconciler.engine.waiter import EventWaiter
from reconciler.linode import SERVICE_REGISTRY as LINODE_SERVICES

existing_providers = Literal["linode"]

# Nested factory registry: provider -> service registry
_FACTORY_REGISTRY: dict[str, dict[str, type]] = {
    "linode": LINODE_SERVICES,
}


def provider_factory(provider: existing_providers, config: dict[str, Any]) -> ComputeBlueprint:
    """
    Create the compute client for a provider.
    Args:
        provider: The provider name (e.g. 'linode').
        config: Configuration dictionary, validated against the provider's config model.
    Returns:
        A :class:`ComputeBlueprint` implementation.
    Raises:
        ValueError: If the provider is not supported.
        pydantic.ValidationError: If the config is invalid.
    """
    if provider not in _FACTORY_REGISTRY:
        raise ValueError(f"Unsupported provider: {provider}")

    service_class = _FACTORY_REGISTRY[provider]["compute"]
    config_obj = validate_config(provider, config)
    return service_class(config_obj)


def build_reconciler(provider: existing_providers, config: dict[str, Any]) -> InstanceReconciler:
    """Create a ready-to-use :class:`InstanceReconciler` for *provider*."""
    client = provider_factory(provider, config)
    settings = client.config
    waiter = EventWaiter(client, poll_interval=settings.poll_interval)
    return InstanceReconciler(
        client, waiter, skip_instance_ready_poll=settings.skip_instance_ready_poll
    )
