"""Disk size accounting against a plan's storage allowance.

All sizes are whole megabytes. Checks here run before any mutating call
so a bad request fails without touching the provider.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from reconciler.base.exceptions import InsufficientCapacityError, InvalidResizeError
from reconciler.base.models import Disk, EventAction


def total_disk_size(disks: Iterable[Disk]) -> int:
    """Sum of every disk's size, swap included."""
    return sum(disk.size for disk in disks)


def biggest_disk(disks: Iterable[Disk]) -> Disk | None:
    """Largest disk in provider order; the first one seen wins a tie."""
    biggest: Disk | None = None
    for disk in disks:
        if biggest is None or disk.size > biggest.size:
            biggest = disk
    return biggest


def check_disk_resize(disk: Disk, new_size: int) -> bool:
    """Validate a disk resize request.

    Returns:
        True when the disk must grow, False when the size is unchanged.

    Raises:
        InvalidResizeError: If *new_size* is smaller than the disk.
    """
    if new_size < disk.size:
        raise InvalidResizeError(
            f"Refusing to shrink disk {disk.id} ('{disk.label}') "
            f"from {disk.size} MB to {new_size} MB",
            entity_id=disk.id,
            action=EventAction.DISK_RESIZE.value,
        )
    return new_size > disk.size


def check_capacity(
    entity_id: int,
    required: int,
    allowance: int,
    action: str,
) -> None:
    """Raise if *required* MB of disk does not fit in *allowance* MB.

    Raises:
        InsufficientCapacityError: If ``required > allowance``.
    """
    if required > allowance:
        raise InsufficientCapacityError(
            f"{action} on {entity_id} needs {required} MB of disk "
            f"but the plan allows {allowance} MB",
            entity_id=entity_id,
            action=action,
        )


def expansion_target(disks: Sequence[Disk], disk: Disk, allowance: int) -> int:
    """Size *disk* can grow to so the instance total equals *allowance*.

    The other disks keep their sizes; the result is never below the
    disk's current size.
    """
    others = total_disk_size(disks) - disk.size
    return max(disk.size, allowance - others)
