"""
Run configuration, the provisioning plan derived from it, and the
environment handed to user scripts.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ConfigurationError
from ..resources.handles import DatabaseInstance


class RunConfig(BaseModel):
    """Everything the operator asked for, parsed once from the CLI."""

    model_config = ConfigDict(frozen=True)

    cluster_id: Optional[str] = None
    instance_id: Optional[str] = None
    db_instance_class: str = "db.t3.medium"

    pre_dir: Optional[Path] = None
    post_dir: Optional[Path] = None

    proxy_host: Optional[str] = None
    proxy_key: Optional[Path] = None
    proxy_create: bool = False
    proxy_vpc: Optional[str] = None
    proxy_subnet: Optional[str] = None
    proxy_user: str = "ubuntu"

    local_port: Optional[int] = Field(default=None, ge=1, le=65535)
    poll_timeout: Optional[float] = Field(default=None, gt=0)
    wait_for_confirmation: bool = True


class RestoreKind(Enum):
    CLUSTER = "cluster"
    INSTANCE = "instance"


@dataclass(frozen=True)
class ProvisioningPlan:
    """Which stages a run goes through, derived from a :class:`RunConfig`."""

    restore_kind: RestoreKind
    source_identifier: str
    db_instance_class: str
    create_bastion: bool = False
    proxy_host: Optional[str] = None
    proxy_key: Optional[Path] = None
    proxy_user: str = "ubuntu"
    proxy_vpc: Optional[str] = None
    proxy_subnet: Optional[str] = None
    pre_dir: Optional[Path] = None
    post_dir: Optional[Path] = None
    local_port: Optional[int] = None
    wait_for_confirmation: bool = True

    @property
    def uses_tunnel(self) -> bool:
        return self.create_bastion or self.proxy_host is not None

    @classmethod
    def from_config(cls, config: RunConfig) -> "ProvisioningPlan":
        """
        Validate ``config`` and build the plan.

        Raises:
            ConfigurationError: Conflicting or incomplete options. Nothing
                has been provisioned at this point.
        """
        if bool(config.cluster_id) == bool(config.instance_id):
            raise ConfigurationError(
                "Exactly one of --cluster-id or --instance-id is required"
            )

        if config.proxy_create and config.proxy_host:
            raise ConfigurationError("--proxy and --proxy-create are mutually exclusive")
        if config.proxy_create and not (config.proxy_vpc and config.proxy_subnet):
            raise ConfigurationError(
                "--proxy-create requires --proxy-vpc and --proxy-subnet"
            )
        if config.proxy_host and not config.proxy_key:
            raise ConfigurationError("--proxy requires --proxy-key")
        if config.proxy_key and not config.proxy_key.is_file():
            raise ConfigurationError(f"Proxy key {config.proxy_key} is not a file")

        for option, directory in (("--pre", config.pre_dir), ("--post", config.post_dir)):
            if directory is not None and not directory.is_dir():
                raise ConfigurationError(f"{option} {directory} is not a directory")

        if config.cluster_id:
            restore_kind, source = RestoreKind.CLUSTER, config.cluster_id
        else:
            restore_kind, source = RestoreKind.INSTANCE, config.instance_id

        return cls(
            restore_kind=restore_kind,
            source_identifier=source,
            db_instance_class=config.db_instance_class,
            create_bastion=config.proxy_create,
            proxy_host=config.proxy_host,
            proxy_key=config.proxy_key,
            proxy_user=config.proxy_user,
            proxy_vpc=config.proxy_vpc,
            proxy_subnet=config.proxy_subnet,
            pre_dir=config.pre_dir,
            post_dir=config.post_dir,
            local_port=config.local_port,
            wait_for_confirmation=config.wait_for_confirmation,
        )


@dataclass(frozen=True)
class EnvironmentBindings:
    """Connection details exported to user scripts as ``DB_*`` variables."""

    host: str
    port: int
    name: str = ""
    user: str = ""

    @classmethod
    def for_database(
        cls, database: DatabaseInstance, local_port: Optional[int] = None
    ) -> "EnvironmentBindings":
        """Bindings for ``database``, through a local tunnel port if given."""
        if local_port is not None:
            host, port = "localhost", local_port
        else:
            host, port = database.address, database.port
        return cls(
            host=host,
            port=port,
            name=database.db_name or "",
            user=database.master_username or "",
        )

    def as_env(self) -> Dict[str, str]:
        return {
            "DB_HOST": self.host,
            "DB_PORT": str(self.port),
            "DB_NAME": self.name,
            "DB_USER": self.user,
        }
