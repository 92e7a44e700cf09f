"""
Reconciler exception hierarchy.

Every error raised by the engine inherits from :class:`ReconcilerError`
and carries the offending entity ID and the attempted action so that
operators can correlate it with the provider's activity log.
"""

from __future__ import annotations


# ── Base ──────────────────────────────────────────────────────────────
class ReconcilerError(Exception):
    """Root exception for all reconciler errors.

    Attributes:
        entity_id: ID of the provider object the failure relates to.
        action: Provider action that was being attempted (e.g. ``linode_resize``).
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: int | None = None,
        action: str | None = None,
    ) -> None:
        super().__init__(message)
        self.entity_id = entity_id
        self.action = action


# ── Device resolution ─────────────────────────────────────────────────
class LabelNotFoundError(ReconcilerError):
    """A device slot references a disk label the instance does not have."""

    def __init__(
        self,
        label: str,
        *,
        entity_id: int | None = None,
        config_label: str | None = None,
        action: str = "config_update",
    ) -> None:
        where = f" in config '{config_label}'" if config_label else ""
        super().__init__(
            f"Disk label '{label}'{where} does not match any disk on instance {entity_id}",
            entity_id=entity_id,
            action=action,
        )
        self.label = label
        self.config_label = config_label


# ── Sizing ────────────────────────────────────────────────────────────
class InvalidResizeError(ReconcilerError):
    """A disk resize would shrink the disk."""


class InsufficientCapacityError(ReconcilerError):
    """The target plan cannot hold the instance's disks."""


# ── Asynchronous operations ──────────────────────────────────────────
class AsyncOperationError(ReconcilerError):
    """Base exception for provider operations that did not complete."""


class AsyncTimeoutError(AsyncOperationError):
    """No terminal event was observed before the timeout elapsed."""


class ProviderOperationFailedError(AsyncOperationError):
    """The provider reported the asynchronous operation as failed."""


# ── Provider API ──────────────────────────────────────────────────────
class ProviderError(ReconcilerError):
    """The provider API rejected a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        entity_id: int | None = None,
        action: str | None = None,
    ) -> None:
        super().__init__(message, entity_id=entity_id, action=action)
        self.status_code = status_code


class ResourceNotFoundError(ProviderError):
    """The requested provider object does not exist."""
