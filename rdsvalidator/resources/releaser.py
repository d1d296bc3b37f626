"""
Provider registry and handle-to-release dispatch.
"""

from dataclasses import dataclass

from .aws import AWSClients
from .base import RunContext
from .compute import ComputeInstanceProvider
from .database import DatabaseProvider
from .firewall import FirewallRuleProvider
from .handles import (
    ComputeInstance,
    DatabaseCluster,
    DatabaseInstance,
    ExternalProcess,
    FirewallRule,
    Keypair,
    ResourceHandle,
)
from .keypair import KeypairProvider
from .tunnel import TunnelProvider


@dataclass
class Providers:
    """One provider per resource kind, sharing a run context."""

    keypairs: KeypairProvider
    firewall: FirewallRuleProvider
    compute: ComputeInstanceProvider
    database: DatabaseProvider
    tunnel: TunnelProvider

    @classmethod
    def from_clients(cls, context: RunContext, clients: AWSClients) -> "Providers":
        return cls(
            keypairs=KeypairProvider(context, clients.ec2),
            firewall=FirewallRuleProvider(context, clients.ec2),
            compute=ComputeInstanceProvider(context, clients.ec2),
            database=DatabaseProvider(context, clients.rds),
            tunnel=TunnelProvider(context),
        )


class Releaser:
    """Releases a handle through the provider owning its kind."""

    def __init__(self, providers: Providers):
        self.providers = providers

    async def __call__(self, handle: ResourceHandle) -> None:
        match handle:
            case Keypair():
                await self.providers.keypairs.release(handle)
            case FirewallRule():
                await self.providers.firewall.release(handle)
            case ComputeInstance():
                await self.providers.compute.release(handle)
            case DatabaseCluster() | DatabaseInstance():
                await self.providers.database.release(handle)
            case ExternalProcess():
                await self.providers.tunnel.release(handle)
            case _:
                raise TypeError(f"No provider releases {type(handle).__name__}")
