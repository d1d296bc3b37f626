"""
Inventory of restorable databases for ``--list``.
"""

import asyncio
import logging
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from ..errors import ProvisioningError
from .base import aws_error_code

logger = logging.getLogger(__name__)


class ClusterMember(BaseModel):
    identifier: str
    writer: bool = False


class ClusterSummary(BaseModel):
    identifier: str
    status: str = ""
    members: List[ClusterMember] = Field(default_factory=list)


class InstanceSummary(BaseModel):
    identifier: str
    status: str = ""


class DatabaseInventory(BaseModel):
    """Clusters (shared ones included) and standalone instances."""

    clusters: List[ClusterSummary] = Field(default_factory=list)
    instances: List[InstanceSummary] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


def build_inventory(
    clusters: List[Dict[str, Any]], instances: List[Dict[str, Any]]
) -> DatabaseInventory:
    """Build the inventory from raw ``describe_db_*`` items.

    Instances that belong to a cluster are listed under their cluster only.
    """
    return DatabaseInventory(
        clusters=[
            ClusterSummary(
                identifier=cluster["DBClusterIdentifier"],
                status=cluster.get("Status", ""),
                members=[
                    ClusterMember(
                        identifier=member["DBInstanceIdentifier"],
                        writer=member.get("IsClusterWriter", False),
                    )
                    for member in cluster.get("DBClusterMembers", [])
                ],
            )
            for cluster in clusters
        ],
        instances=[
            InstanceSummary(
                identifier=instance["DBInstanceIdentifier"],
                status=instance.get("DBInstanceStatus", ""),
            )
            for instance in instances
            if not instance.get("DBClusterIdentifier")
        ],
    )


def _paginate(rds, operation: str, key: str, **kwargs: Any) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for page in rds.get_paginator(operation).paginate(**kwargs):
        items.extend(page.get(key, []))
    return items


async def list_databases(rds) -> DatabaseInventory:
    """Describe every cluster and instance visible to the account."""
    try:
        clusters = await asyncio.to_thread(
            _paginate, rds, "describe_db_clusters", "DBClusters", IncludeShared=True
        )
        instances = await asyncio.to_thread(
            _paginate, rds, "describe_db_instances", "DBInstances"
        )
    except Exception as e:
        raise ProvisioningError(
            f"Failed to list databases: {e}", kind="inventory", code=aws_error_code(e)
        ) from e

    logger.info(
        f"Found {len(clusters)} clusters and {len(instances)} instances",
        extra={"clusters": len(clusters), "instances": len(instances)},
    )
    return build_inventory(clusters, instances)
