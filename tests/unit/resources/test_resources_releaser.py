"""
Tests for handle-to-provider release dispatch.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rdsvalidator.config.settings import CloudSettings
from rdsvalidator.resources.aws import AWSClients
from rdsvalidator.resources.handles import (
    ComputeInstance,
    DatabaseCluster,
    DatabaseInstance,
    ExternalProcess,
    FirewallRule,
    Keypair,
)
from rdsvalidator.resources.releaser import Providers, Releaser


class TestReleaser:
    """Test suite for Releaser."""

    @pytest.fixture
    def providers(self):
        return Providers(
            keypairs=MagicMock(release=AsyncMock()),
            firewall=MagicMock(release=AsyncMock()),
            compute=MagicMock(release=AsyncMock()),
            database=MagicMock(release=AsyncMock()),
            tunnel=MagicMock(release=AsyncMock()),
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "handle,owner",
        [
            (Keypair(key_pair_id="key-1", key_name="k"), "keypairs"),
            (FirewallRule(group_id="sg-1"), "firewall"),
            (ComputeInstance(instance_id="i-1", public_ip=""), "compute"),
            (DatabaseCluster(cluster_id="c"), "database"),
            (DatabaseInstance(instance_id="d", address="", port=0), "database"),
            (ExternalProcess(pid=1, description="ssh"), "tunnel"),
        ],
    )
    async def test_dispatch(self, providers, handle, owner):
        """Test each handle kind is released by its own provider."""
        await Releaser(providers)(handle)

        getattr(providers, owner).release.assert_awaited_once_with(handle)

    @pytest.mark.asyncio
    async def test_unknown_handle(self, providers):
        with pytest.raises(TypeError, match="str"):
            await Releaser(providers)("not-a-handle")


class TestProviders:
    def test_from_clients(self, run_context):
        """Test providers share the run context and the session's clients."""
        session = MagicMock()
        clients = AWSClients(CloudSettings(), session=session)

        providers = Providers.from_clients(run_context, clients)

        assert providers.keypairs.context is run_context
        assert providers.database.rds is session.client.return_value
        session.client.assert_any_call("ec2")
        session.client.assert_any_call("rds")


class TestAWSClients:
    def test_session_from_settings(self, monkeypatch):
        for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        settings = CloudSettings(aws_region="eu-west-1", aws_profile="validation")

        with patch("boto3.Session") as mock_session:
            clients = AWSClients(settings)
            clients.ec2
            clients.ec2

        mock_session.assert_called_once_with(region_name="eu-west-1", profile_name="validation")
        mock_session.return_value.client.assert_called_once_with("ec2")
