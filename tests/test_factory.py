"""Tests for the provider factory."""

from unittest.mock import patch
import pytest
from pydantic import ValidationError

from reconciler.factory import build_reconciler, provider_factory
from reconciler.engine.reconcile import InstanceReconciler
from reconciler.linode.compute import Compute


class TestProviderFactory:
    def test_linode(self):
        client = provider_factory("linode", {"token": "tok"})
        assert isinstance(client, Compute)
        assert client.config.token == "tok"
        client.close()

    def test_unsupported_provider(self):
        with pytest.raises(ValueError, match="Unsupported provider"):
            provider_factory("azure", {})

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            provider_factory("linode", {"token": "tok", "event_poll_ms": 0})

    @patch("reconciler.factory.validate_config")
    def test_config_is_validated(self, mock_validate):
        mock_validate.side_effect = ValueError("bad")
        with pytest.raises(ValueError, match="bad"):
            provider_factory("linode", {"token": "tok"})
        mock_validate.assert_called_once_with("linode", {"token": "tok"})


class TestBuildReconciler:
    def test_wiring(self):
        rec = build_reconciler(
            "linode",
            {"token": "tok", "event_poll_ms": 2000, "skip_instance_ready_poll": True},
        )
        assert isinstance(rec, InstanceReconciler)
        assert rec.waiter.client is rec.client
        assert rec.waiter.poll_interval == 2.0
        assert rec.skip_instance_ready_poll is True
        rec.client.close()
