"""
Tests for the command-line interface.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from rdsvalidator import __version__
from rdsvalidator.cli.main import cli
from rdsvalidator.errors import EXIT_CLEANUP_INCOMPLETE, EXIT_INTERRUPTED, EXIT_USAGE, ProvisioningError
from rdsvalidator.orchestration.plan import RestoreKind
from rdsvalidator.resources.listing import DatabaseInventory, InstanceSummary


class TestCLI:
    """Test suite for the rdsvalidator command."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("rdsvalidator.cli.main.configure_logging", return_value=None) as configure:
            yield configure

    @pytest.fixture
    def mock_run(self):
        with patch("rdsvalidator.cli.main._run", new=AsyncMock(return_value=0)) as run:
            yield run

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "--cluster-id" in result.output
        assert "--proxy-create" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_neither_source(self, runner, mock_run):
        """Test a run without --cluster-id or --instance-id is a usage error."""
        result = runner.invoke(cli, [])

        assert result.exit_code == EXIT_USAGE
        assert "Exactly one" in result.output
        mock_run.assert_not_awaited()

    def test_both_sources(self, runner, mock_run):
        result = runner.invoke(cli, ["--cluster-id", "billing", "--instance-id", "orders"])

        assert result.exit_code == EXIT_USAGE
        mock_run.assert_not_awaited()

    def test_proxy_create_requires_network(self, runner, mock_run):
        result = runner.invoke(cli, ["--instance-id", "orders", "--proxy-create"])

        assert result.exit_code == EXIT_USAGE
        assert "--proxy-vpc" in result.output
        mock_run.assert_not_awaited()

    def test_list_conflicts_with_source(self, runner):
        result = runner.invoke(cli, ["--list", "--cluster-id", "billing"])

        assert result.exit_code == 2
        assert "--list cannot be combined" in result.output

    def test_run_builds_plan(self, runner, mock_run, tmp_path):
        """Test options become the plan handed to the orchestrator."""
        result = runner.invoke(
            cli,
            [
                "--cluster-id",
                "billing",
                "--instance-type",
                "db.r6g.large",
                "--post",
                str(tmp_path),
                "--proxy-create",
                "--proxy-vpc",
                "vpc-1",
                "--proxy-subnet",
                "subnet-1",
                "--no-wait",
            ],
        )

        assert result.exit_code == 0, result.output
        plan = mock_run.await_args.args[0]
        assert plan.restore_kind is RestoreKind.CLUSTER
        assert plan.db_instance_class == "db.r6g.large"
        assert plan.create_bastion
        assert plan.post_dir == tmp_path
        assert plan.proxy_user == "ubuntu"
        assert not plan.wait_for_confirmation

    def test_environment_variables(self, runner, mock_run):
        """Test options can be set through RV_ environment variables."""
        result = runner.invoke(cli, [], env={"RV_INSTANCE_ID": "orders", "RV_NO_WAIT": "1"})

        assert result.exit_code == 0, result.output
        plan = mock_run.await_args.args[0]
        assert plan.source_identifier == "orders"
        assert not plan.wait_for_confirmation

    def test_poll_timeout_override(self, runner, mock_run):
        result = runner.invoke(cli, ["--instance-id", "orders", "--poll-timeout", "900"])

        assert result.exit_code == 0, result.output
        settings = mock_run.await_args.args[1]
        assert settings.provisioning.poll_timeout == 900.0

    @pytest.mark.parametrize("status", [EXIT_INTERRUPTED, EXIT_CLEANUP_INCOMPLETE])
    def test_exit_status_propagated(self, runner, status):
        with patch("rdsvalidator.cli.main._run", new=AsyncMock(return_value=status)):
            result = runner.invoke(cli, ["--instance-id", "orders"])

        assert result.exit_code == status

    def test_list(self, runner):
        """Test list mode prints the inventory as JSON."""
        inventory = DatabaseInventory(
            instances=[InstanceSummary(identifier="orders", status="available")]
        )

        with (
            patch("rdsvalidator.cli.main.AWSClients", MagicMock()),
            patch(
                "rdsvalidator.cli.main.list_databases",
                new=AsyncMock(return_value=inventory),
            ),
        ):
            result = runner.invoke(cli, ["--list"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "clusters": [],
            "instances": [{"identifier": "orders", "status": "available"}],
        }

    def test_list_failure(self, runner):
        with (
            patch("rdsvalidator.cli.main.AWSClients", MagicMock()),
            patch(
                "rdsvalidator.cli.main.list_databases",
                new=AsyncMock(side_effect=ProvisioningError("Failed to list databases")),
            ),
        ):
            result = runner.invoke(cli, ["--list"])

        assert result.exit_code == 1
        assert "Failed to list databases" in result.output
