"""
Provisionable resources: handles and their providers.
"""

from .handles import (
    ComputeInstance,
    DatabaseCluster,
    DatabaseInstance,
    ExternalProcess,
    FirewallRule,
    Keypair,
    ResourceHandle,
    ResourceKind,
)

__all__ = [
    "ResourceKind",
    "ResourceHandle",
    "Keypair",
    "FirewallRule",
    "ComputeInstance",
    "DatabaseCluster",
    "DatabaseInstance",
    "ExternalProcess",
]
