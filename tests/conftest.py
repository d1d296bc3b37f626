"""
Pytest configuration and shared fixtures.
"""

import io

import botocore.exceptions
import pytest
from rich.console import Console

from rdsvalidator.config.settings import ProvisioningSettings
from rdsvalidator.logging_utils.log_manager import LogManager
from rdsvalidator.logging_utils.progress_tracker import ProgressTracker
from rdsvalidator.resources.base import RunContext


def _client_error(code: str, operation: str = "Operation") -> botocore.exceptions.ClientError:
    return botocore.exceptions.ClientError(
        {"Error": {"Code": code, "Message": f"{code} raised by test"}}, operation
    )


@pytest.fixture
def client_error():
    """Factory building a botocore ClientError carrying an AWS error code."""
    return _client_error


@pytest.fixture
def fast_settings() -> ProvisioningSettings:
    """Provisioning settings with zero poll intervals."""
    return ProvisioningSettings(
        keypair_poll_interval=0,
        firewall_poll_interval=0,
        compute_poll_interval=0,
        database_poll_interval=0,
        ssh_poll_interval=0,
        tunnel_grace_period=0.05,
    )


@pytest.fixture
def run_context(fast_settings) -> RunContext:
    """Run context without progress reporting."""
    return RunContext(settings=fast_settings)


@pytest.fixture
def log_manager(tmp_path) -> LogManager:
    """Event log writing into a temporary directory."""
    return LogManager(log_dir=str(tmp_path / "logs"))


@pytest.fixture
def console() -> Console:
    """Console rendering into memory."""
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def progress(log_manager, console) -> ProgressTracker:
    """Progress tracker rendering into memory."""
    return ProgressTracker(log_manager, console=console)
