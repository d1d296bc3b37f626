"""
Resource handles.

A handle is the minimum needed to release one provisioned resource. Handles
are only built once the resource is confirmed to exist, and the set of
variants is closed: :data:`ResourceHandle` is the union of all of them.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Optional, Union


class ResourceKind(Enum):
    """Kinds of resources a run can provision."""

    KEYPAIR = "keypair"
    FIREWALL_RULE = "firewall_rule"
    COMPUTE_INSTANCE = "compute_instance"
    DATABASE_CLUSTER = "database_cluster"
    DATABASE_INSTANCE = "database_instance"
    EXTERNAL_PROCESS = "external_process"


@dataclass(frozen=True)
class Keypair:
    """EC2 key pair plus the local file holding its private key."""

    kind: ClassVar[ResourceKind] = ResourceKind.KEYPAIR

    key_pair_id: str
    key_name: str
    key_file: Optional[Path] = None

    @property
    def label(self) -> str:
        return f"keypair {self.key_name} ({self.key_pair_id})"


@dataclass(frozen=True)
class FirewallRule:
    """Security group granting SSH access to the bastion."""

    kind: ClassVar[ResourceKind] = ResourceKind.FIREWALL_RULE

    group_id: str
    group_name: str = ""
    vpc_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"security group {self.group_name or self.group_id} ({self.group_id})"


@dataclass(frozen=True)
class ComputeInstance:
    """EC2 instance used as an SSH bastion."""

    kind: ClassVar[ResourceKind] = ResourceKind.COMPUTE_INSTANCE

    instance_id: str
    public_ip: str

    @property
    def label(self) -> str:
        return f"ec2 instance {self.instance_id} ({self.public_ip})"


@dataclass(frozen=True)
class DatabaseCluster:
    """Restored RDS cluster."""

    kind: ClassVar[ResourceKind] = ResourceKind.DATABASE_CLUSTER

    cluster_id: str
    engine: str = ""

    @property
    def label(self) -> str:
        return f"db cluster {self.cluster_id}"


@dataclass(frozen=True)
class DatabaseInstance:
    """Restored RDS instance, standalone or a member of a restored cluster."""

    kind: ClassVar[ResourceKind] = ResourceKind.DATABASE_INSTANCE

    instance_id: str
    address: str
    port: int
    db_name: Optional[str] = None
    master_username: Optional[str] = None
    cluster_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"db instance {self.instance_id}"


@dataclass(frozen=True)
class ExternalProcess:
    """Long-running local process, such as an SSH tunnel."""

    kind: ClassVar[ResourceKind] = ResourceKind.EXTERNAL_PROCESS

    pid: int
    description: str
    process: Any = field(default=None, compare=False, repr=False)

    @property
    def label(self) -> str:
        return f"{self.description} (pid {self.pid})"


ResourceHandle = Union[
    Keypair,
    FirewallRule,
    ComputeInstance,
    DatabaseCluster,
    DatabaseInstance,
    ExternalProcess,
]
