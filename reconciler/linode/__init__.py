"""Linode API v4 provider.

``SERVICE_REGISTRY`` is consumed by :func:`reconciler.factory.provider_factory`.
"""

from reconciler.linode.compute import Compute


# Service registry for Linode
SERVICE_REGISTRY: dict[str, type] = {
    "compute": Compute,
}

__all__ = ["Compute", "SERVICE_REGISTRY"]
