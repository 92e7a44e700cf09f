"""Instance reconciliation engine.

Leaves first: device resolution, flattening, size accounting, the event
waiter, the resize orchestrator, and the reconciler that ties them into a
pass.
"""

from .devices import build_label_map, expand_device_map, resolve_device
from .flatten import flatten_configs, flatten_disks, flatten_instance
from .reconcile import ChangeSet, InstanceReconciler, InstanceState, ReconcileResult
from .resize import ResizeOrchestrator, ResizeState
from .sizing import biggest_disk, check_disk_resize, total_disk_size
from .waiter import EventWaiter, WaitOutcome, WaitResult, raise_for_result


__all__ = [
    "build_label_map",
    "expand_device_map",
    "resolve_device",
    "flatten_configs",
    "flatten_disks",
    "flatten_instance",
    "ChangeSet",
    "InstanceReconciler",
    "InstanceState",
    "ReconcileResult",
    "ResizeOrchestrator",
    "ResizeState",
    "biggest_disk",
    "check_disk_resize",
    "total_disk_size",
    "EventWaiter",
    "WaitOutcome",
    "WaitResult",
    "raise_for_result",
]
