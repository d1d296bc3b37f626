"""
Unit test specific fixtures: an in-memory cloud standing in for every provider.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Tuple
from unittest.mock import AsyncMock

import pytest

from rdsvalidator.errors import ReleaseError
from rdsvalidator.resources.handles import (
    ComputeInstance,
    DatabaseCluster,
    DatabaseInstance,
    ExternalProcess,
    FirewallRule,
    Keypair,
)
from rdsvalidator.resources.releaser import Providers
from rdsvalidator.resources.scripts import ScriptRunner

Hook = Callable[[], Awaitable[None]]


class FakeCloud:
    """
    Implements every provider operation in memory.

    ``journal`` records ``("acquire", step)`` and ``("release", label)``
    entries in call order. ``hooks[step]`` runs before ``step`` returns its
    handle and may raise or trigger signals. Releasing a label listed in
    ``failing_releases`` raises :class:`ReleaseError`.
    """

    def __init__(self):
        self.journal: List[Tuple[str, str]] = []
        self.hooks: Dict[str, Hook] = {}
        self.failing_releases: set = set()
        self.calls: Dict[str, Tuple[Any, ...]] = {}

    async def _step(self, step: str, *args: Any) -> None:
        self.journal.append(("acquire", step))
        self.calls[step] = args
        hook = self.hooks.get(step)
        if hook is not None:
            await hook()

    @property
    def acquired(self) -> List[str]:
        return [name for action, name in self.journal if action == "acquire"]

    @property
    def released(self) -> List[str]:
        return [name for action, name in self.journal if action == "release"]

    async def release(self, handle) -> None:
        self.journal.append(("release", handle.label))
        if handle.label in self.failing_releases:
            raise ReleaseError("simulated failure", label=handle.label)


class FakeKeypairs:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    async def acquire(self) -> Keypair:
        await self.cloud._step("keypair")
        return Keypair(key_pair_id="key-0001", key_name="rdsvalidator-abcdefgh")

    async def release(self, handle) -> None:
        await self.cloud.release(handle)


class FakeFirewall:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    async def acquire(self, vpc_id: str) -> FirewallRule:
        await self.cloud._step("firewall", vpc_id)
        return FirewallRule(group_id="sg-0001", group_name="rdsvalidator-abcdefgh", vpc_id=vpc_id)

    async def release(self, handle) -> None:
        await self.cloud.release(handle)


class FakeCompute:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    async def acquire(self, group_id: str, subnet_id: str, key_name: str) -> ComputeInstance:
        await self.cloud._step("compute", group_id, subnet_id, key_name)
        return ComputeInstance(instance_id="i-0001", public_ip="203.0.113.10")

    async def release(self, handle) -> None:
        await self.cloud.release(handle)


class FakeDatabase:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    async def latest_cluster_snapshot(self, cluster_id: str) -> Dict[str, Any]:
        await self.cloud._step("cluster_snapshot", cluster_id)
        return {
            "DBClusterIdentifier": cluster_id,
            "DBClusterSnapshotArn": f"arn:aws:rds:snapshot:{cluster_id}",
            "SnapshotCreateTime": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }

    async def latest_instance_snapshot(self, instance_id: str) -> Dict[str, Any]:
        await self.cloud._step("instance_snapshot", instance_id)
        return {
            "DBInstanceIdentifier": instance_id,
            "DBSnapshotArn": f"arn:aws:rds:snapshot:{instance_id}",
            "SnapshotCreateTime": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }

    async def acquire_cluster(self, snapshot, security_group_ids=None) -> DatabaseCluster:
        await self.cloud._step("cluster", snapshot["DBClusterIdentifier"], security_group_ids)
        return DatabaseCluster(cluster_id="billing-restored", engine="aurora-postgresql")

    async def acquire_cluster_instance(self, cluster, instance_class) -> DatabaseInstance:
        await self.cloud._step("cluster_instance", cluster.cluster_id, instance_class)
        return DatabaseInstance(
            instance_id=f"{cluster.cluster_id}-instance-1",
            address="billing.cluster.example.internal",
            port=5432,
            db_name="billing",
            master_username="postgres",
            cluster_id=cluster.cluster_id,
        )

    async def acquire_instance(self, snapshot, instance_class, security_group_ids=None) -> DatabaseInstance:
        await self.cloud._step(
            "instance", snapshot["DBInstanceIdentifier"], instance_class, security_group_ids
        )
        return DatabaseInstance(
            instance_id="orders-restored",
            address="orders.example.internal",
            port=3306,
            db_name="orders",
            master_username="admin",
        )

    async def release(self, handle) -> None:
        await self.cloud.release(handle)


class FakeTunnel:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    async def acquire(self, host, user, key_file, db_host, remote_port, local_port) -> ExternalProcess:
        await self.cloud._step("tunnel", host, user, key_file, db_host, remote_port, local_port)
        return ExternalProcess(pid=4242, description=f"ssh tunnel {local_port}:{db_host}:{remote_port}")

    async def release(self, handle) -> None:
        await self.cloud.release(handle)


@pytest.fixture
def fake_cloud() -> FakeCloud:
    """In-memory cloud shared by the fake providers."""
    return FakeCloud()


@pytest.fixture
def fake_providers(fake_cloud) -> Providers:
    """Providers backed by :class:`FakeCloud`."""
    return Providers(
        keypairs=FakeKeypairs(fake_cloud),
        firewall=FakeFirewall(fake_cloud),
        compute=FakeCompute(fake_cloud),
        database=FakeDatabase(fake_cloud),
        tunnel=FakeTunnel(fake_cloud),
    )


@pytest.fixture
def mock_scripts() -> ScriptRunner:
    """Script runner that records calls without starting processes."""
    runner = AsyncMock(spec=ScriptRunner)
    runner.run = AsyncMock(return_value=1)
    return runner


@pytest.fixture
def confirm() -> AsyncMock:
    """Operator confirmation that returns immediately."""
    return AsyncMock(return_value=None)
