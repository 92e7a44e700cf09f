"""
Pydantic configuration models for the provider connection and timeouts.

Validates provider configs at initialization time instead of
silently passing bad values to the HTTP client.
"""

from __future__ import annotations

import os
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, model_validator


class LinodeConfig(BaseModel):
    """Configuration for the Linode API v4 provider.

    Values are resolved in order:
    1. Explicit values passed in the config dict.
    2. Environment variables (LINODE_TOKEN, LINODE_URL, LINODE_API_VERSION,
       LINODE_UA_PREFIX, LINODE_EVENT_POLL_MS).
    3. The defaults declared on the fields.
    """

    model_config = ConfigDict(extra="forbid")

    token: str = Field(description="Personal access token for the Linode API")
    url: str = Field(default="https://api.linode.com", description="API base URL")
    api_version: str = Field(default="v4", description="API version path segment")
    ua_prefix: str | None = Field(
        default=None, description="Prefix prepended to the User-Agent header"
    )
    event_poll_ms: int = Field(
        default=300, gt=0, description="Interval between event polls, in milliseconds"
    )
    min_retry_delay_ms: int = Field(
        default=1000, ge=0, description="Delay before the first transport retry"
    )
    max_retry_delay_ms: int = Field(
        default=30000, ge=0, description="Upper bound on the transport retry delay"
    )
    max_retries: int = Field(default=3, ge=1, description="Attempts per API request")
    skip_instance_ready_poll: bool = Field(
        default=False, description="Do not wait for the boot that ends a pass"
    )
    http_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Fall back to environment variables for missing settings."""
        env_map = {
            "token": "LINODE_TOKEN",
            "url": "LINODE_URL",
            "api_version": "LINODE_API_VERSION",
            "ua_prefix": "LINODE_UA_PREFIX",
            "event_poll_ms": "LINODE_EVENT_POLL_MS",
        }
        for field, env_var in env_map.items():
            if not values.get(field) and os.environ.get(env_var):
                values[field] = os.environ[env_var]
        return values

    @model_validator(mode="after")
    def validate_retry_window(self) -> LinodeConfig:
        """Ensure the retry delay bounds are ordered."""
        if self.min_retry_delay_ms > self.max_retry_delay_ms:
            raise ValueError(
                "min_retry_delay_ms must not exceed max_retry_delay_ms "
                f"({self.min_retry_delay_ms} > {self.max_retry_delay_ms})"
            )
        return self

    @property
    def base_url(self) -> str:
        return f"{self.url.rstrip('/')}/{self.api_version}"

    @property
    def poll_interval(self) -> float:
        """Event poll interval in seconds."""
        return self.event_poll_ms / 1000


class Timeouts(BaseModel):
    """Per-phase wait budgets, in seconds."""

    model_config = ConfigDict(extra="forbid")

    create: float = Field(default=600.0, ge=0)
    update: float = Field(default=1200.0, ge=0)


# Map provider names to their config models for dynamic validation
CONFIG_REGISTRY: dict[str, type[BaseModel]] = {
    "linode": LinodeConfig,
}


def validate_config(provider: str, config: dict) -> BaseModel:
    """Validate and return a typed config model for the given provider.

    Args:
        provider: The provider name (e.g. 'linode').
        config: Raw configuration dictionary.

    Returns:
        A validated Pydantic config model.

    Raises:
        ValueError: If the provider is unknown.
        pydantic.ValidationError: If the config is invalid.
    """
    model = CONFIG_REGISTRY.get(provider)
    if model is None:
        raise ValueError(f"No config model registered for provider: {provider}")
    return model(**config)


__all__ = [
    "LinodeConfig",
    "Timeouts",
    "CONFIG_REGISTRY",
    "validate_config",
]
