"""Declarative instance reconciliation for the Linode API.

Entry point for the library. Build a reconciler with
:func:`build_reconciler` and run a pass against an instance::

    from reconciler import build_reconciler, InstanceSpec

    rec = build_reconciler("linode", {"token": "..."})
    current = rec.observe(123)
    result = rec.reconcile(InstanceSpec(**desired), current)
"""

__version__ = "0.1.0"

from .base import (
    ComputeBlueprint,
    ConfigSpec,
    DeviceSpec,
    DiskSpec,
    InstanceSpec,
    LinodeConfig,
    Timeouts,
)
from .engine import InstanceReconciler, InstanceState, ReconcileResult
from .factory import build_reconciler, provider_factory

__all__ = [
    "__version__",
    "ComputeBlueprint",
    "ConfigSpec",
    "DeviceSpec",
    "DiskSpec",
    "InstanceSpec",
    "LinodeConfig",
    "Timeouts",
    "InstanceReconciler",
    "InstanceState",
    "ReconcileResult",
    "build_reconciler",
    "provider_factory",
]
