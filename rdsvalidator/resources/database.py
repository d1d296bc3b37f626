"""
RDS snapshot lookup, restore, and deletion.

A cluster restore yields two resources, the cluster and one writer instance
inside it, acquired (and recorded) one after the other. An instance restore
yields a single standalone instance.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ..errors import ProvisioningError, RDSValidatorError
from ..utils.naming import restored_identifier
from .base import ResourceProvider, RunContext, error_code_in
from .handles import DatabaseCluster, DatabaseInstance, ResourceKind

_INSTANCE_NOT_FOUND = {"DBInstanceNotFound", "DBInstanceNotFoundFault"}
_CLUSTER_NOT_FOUND = {"DBClusterNotFoundFault", "DBClusterNotFound"}
_ALREADY_DELETING = {"InvalidDBInstanceState", "InvalidDBClusterStateFault"}

# Statuses a restore never recovers from on its own
_FAILED_STATUSES = {
    "failed",
    "deleting",
    "incompatible-restore",
    "incompatible-parameters",
    "incompatible-network",
    "inaccessible-encryption-credentials",
    "restore-error",
    "storage-full",
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Appended to a restored cluster's identifier to name its writer instance
CLUSTER_INSTANCE_SUFFIX = "-instance-1"


def select_latest_snapshot(snapshots: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pick the most recently created snapshot.

    Snapshots are sorted by ``SnapshotCreateTime`` ascending and the last one
    wins. Snapshots that report a status other than ``available`` cannot be
    restored and are skipped.
    """
    candidates = [
        snapshot
        for snapshot in snapshots
        if snapshot.get("Status", "available") == "available"
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda s: s.get("SnapshotCreateTime") or _EPOCH)
    return candidates[-1]


class DatabaseProvider(ResourceProvider):
    """Restores RDS clusters and instances from their latest snapshot."""

    kind = ResourceKind.DATABASE_INSTANCE
    not_found_codes = frozenset(_INSTANCE_NOT_FOUND | _CLUSTER_NOT_FOUND)

    def __init__(self, context: RunContext, rds):
        super().__init__(context)
        self.rds = rds

    # Snapshot lookup

    async def latest_cluster_snapshot(self, cluster_id: str) -> Dict[str, Any]:
        snapshots = await self._paginate(
            "describe_db_cluster_snapshots",
            "DBClusterSnapshots",
            DBClusterIdentifier=cluster_id,
        )
        return self._require_snapshot(snapshots, cluster_id)

    async def latest_instance_snapshot(self, instance_id: str) -> Dict[str, Any]:
        snapshots = await self._paginate(
            "describe_db_snapshots", "DBSnapshots", DBInstanceIdentifier=instance_id
        )
        return self._require_snapshot(snapshots, instance_id)

    def _require_snapshot(
        self, snapshots: List[Dict[str, Any]], source_id: str
    ) -> Dict[str, Any]:
        snapshot = select_latest_snapshot(snapshots)
        if snapshot is None:
            raise ProvisioningError(
                "No snapshots found", kind="snapshot", identifier=source_id
            )
        return snapshot

    async def _paginate(self, operation: str, key: str, **kwargs: Any) -> List[Dict[str, Any]]:
        def collect():
            paginator = self.rds.get_paginator(operation)
            items: List[Dict[str, Any]] = []
            for page in paginator.paginate(**kwargs):
                items.extend(page.get(key, []))
            return items

        try:
            return await self._call(collect)
        except Exception as e:
            raise self._provisioning_error(
                f"Failed to list snapshots ({operation})", e, kwargs.get(
                    "DBClusterIdentifier", kwargs.get("DBInstanceIdentifier")
                )
            )

    # Restore

    async def acquire_cluster(
        self, snapshot: Dict[str, Any], security_group_ids: Optional[List[str]] = None
    ) -> DatabaseCluster:
        """Restore a cluster from ``snapshot`` and wait until it is available."""
        cluster_id = restored_identifier(
            snapshot["DBClusterIdentifier"], reserve=len(CLUSTER_INSTANCE_SUFFIX)
        )
        engine = snapshot.get("Engine", "")

        params: Dict[str, Any] = {
            "DBClusterIdentifier": cluster_id,
            "SnapshotIdentifier": snapshot["DBClusterSnapshotArn"],
            "Engine": engine,
            "DeletionProtection": False,
            "CopyTagsToSnapshot": False,
        }
        if security_group_ids:
            params["VpcSecurityGroupIds"] = security_group_ids

        self.logger.info(
            f"Restoring cluster {cluster_id} from "
            f"{snapshot.get('DBClusterSnapshotIdentifier')}"
        )
        try:
            await self._call(self.rds.restore_db_cluster_from_snapshot, **params)
        except Exception as e:
            raise self._provisioning_error("Failed to restore cluster", e, cluster_id)

        handle = DatabaseCluster(cluster_id=cluster_id, engine=engine)

        async def available():
            cluster = await self._describe_cluster(cluster_id)
            return handle if self._check_status(cluster, cluster_id) else None

        try:
            return await self._wait(
                available,
                interval=self.settings.database_poll_interval,
                label=handle.label,
                retry_on=error_code_in(_CLUSTER_NOT_FOUND),
            )
        except Exception as e:
            await self._abandon(handle)
            if isinstance(e, RDSValidatorError):
                raise
            raise self._provisioning_error(
                "Cluster never became available", e, cluster_id
            ) from e

    async def acquire_cluster_instance(
        self, cluster: DatabaseCluster, instance_class: str
    ) -> DatabaseInstance:
        """Create the writer instance of a restored cluster."""
        instance_id = f"{cluster.cluster_id}{CLUSTER_INSTANCE_SUFFIX}"
        self.logger.info(f"Creating instance {instance_id} in {cluster.label}")
        try:
            await self._call(
                self.rds.create_db_instance,
                DBClusterIdentifier=cluster.cluster_id,
                DBInstanceIdentifier=instance_id,
                DBInstanceClass=instance_class,
                Engine=cluster.engine,
                PubliclyAccessible=False,
                AutoMinorVersionUpgrade=False,
                BackupRetentionPeriod=0,
            )
        except Exception as e:
            raise self._provisioning_error(
                "Failed to create cluster instance", e, instance_id
            )

        handle = await self._wait_for_instance(instance_id, cluster.cluster_id)
        if handle.db_name and handle.master_username:
            return handle

        # Aurora members may leave these on the cluster only
        described = await self._describe_cluster(cluster.cluster_id)
        return DatabaseInstance(
            instance_id=handle.instance_id,
            address=handle.address,
            port=handle.port,
            db_name=handle.db_name or described.get("DatabaseName"),
            master_username=handle.master_username or described.get("MasterUsername"),
            cluster_id=handle.cluster_id,
        )

    async def acquire_instance(
        self,
        snapshot: Dict[str, Any],
        instance_class: str,
        security_group_ids: Optional[List[str]] = None,
    ) -> DatabaseInstance:
        """Restore a standalone instance from ``snapshot``."""
        instance_id = restored_identifier(snapshot["DBInstanceIdentifier"])

        params: Dict[str, Any] = {
            "DBInstanceIdentifier": instance_id,
            "DBSnapshotIdentifier": snapshot["DBSnapshotArn"],
            "DBInstanceClass": instance_class,
            "Engine": snapshot.get("Engine"),
            "MultiAZ": False,
            "PubliclyAccessible": False,
            "AutoMinorVersionUpgrade": False,
            "DeletionProtection": False,
        }
        if security_group_ids:
            params["VpcSecurityGroupIds"] = security_group_ids

        self.logger.info(
            f"Restoring instance {instance_id} from "
            f"{snapshot.get('DBSnapshotIdentifier')}"
        )
        try:
            await self._call(self.rds.restore_db_instance_from_db_snapshot, **params)
        except Exception as e:
            raise self._provisioning_error("Failed to restore instance", e, instance_id)

        handle = await self._wait_for_instance(instance_id, None)
        return await self._disable_backups(handle)

    async def _disable_backups(self, handle: DatabaseInstance) -> DatabaseInstance:
        """Set backup retention to 0 on a restored standalone instance.

        Restores inherit the snapshot's retention period and the restore call
        cannot override it, so the change is applied after the first wait.
        """
        self.logger.info(f"Disabling automated backups on {handle.label}")
        try:
            await self._call(
                self.rds.modify_db_instance,
                DBInstanceIdentifier=handle.instance_id,
                BackupRetentionPeriod=0,
                ApplyImmediately=True,
            )
        except Exception as e:
            await self._abandon(handle)
            raise self._provisioning_error(
                "Failed to disable backups", e, handle.instance_id
            ) from e

        return await self._wait_for_instance(
            handle.instance_id, None, backups_disabled=True
        )

    async def _wait_for_instance(
        self,
        instance_id: str,
        cluster_id: Optional[str],
        backups_disabled: bool = False,
    ) -> DatabaseInstance:
        # Not ready yet; only used to release the instance if waiting fails
        pending = DatabaseInstance(
            instance_id=instance_id, address="", port=0, cluster_id=cluster_id
        )

        async def available():
            instance = await self._describe_instance(instance_id)
            if not self._check_status(instance, instance_id):
                return None
            if backups_disabled and instance.get("BackupRetentionPeriod", 0) != 0:
                return None
            endpoint = instance.get("Endpoint") or {}
            return DatabaseInstance(
                instance_id=instance_id,
                address=endpoint.get("Address", ""),
                port=int(endpoint.get("Port", 0)),
                db_name=instance.get("DBName"),
                master_username=instance.get("MasterUsername"),
                cluster_id=cluster_id,
            )

        try:
            return await self._wait(
                available,
                interval=self.settings.database_poll_interval,
                label=pending.label,
                retry_on=error_code_in(_INSTANCE_NOT_FOUND),
            )
        except Exception as e:
            await self._abandon(pending)
            if isinstance(e, RDSValidatorError):
                raise
            raise self._provisioning_error(
                "Instance never became available", e, instance_id
            ) from e

    def _check_status(self, resource: Dict[str, Any], identifier: str) -> bool:
        """True when available; raises when the resource is in a failed state."""
        status = resource.get("Status") or resource.get("DBInstanceStatus")
        if status == "available":
            return True
        if status in _FAILED_STATUSES:
            raise ProvisioningError(
                f"Restore entered status {status}",
                kind=self.kind.value,
                identifier=identifier,
            )
        return False

    async def _describe_instance(self, instance_id: str) -> Dict[str, Any]:
        response = await self._call(
            self.rds.describe_db_instances, DBInstanceIdentifier=instance_id
        )
        return response["DBInstances"][0]

    async def _describe_cluster(self, cluster_id: str) -> Dict[str, Any]:
        response = await self._call(
            self.rds.describe_db_clusters, DBClusterIdentifier=cluster_id
        )
        return response["DBClusters"][0]

    # Release

    async def release(self, handle: Union[DatabaseCluster, DatabaseInstance]) -> None:
        if isinstance(handle, DatabaseCluster):
            await self._delete(
                handle,
                self.rds.delete_db_cluster,
                {"DBClusterIdentifier": handle.cluster_id, "SkipFinalSnapshot": True},
                lambda: self._describe_cluster(handle.cluster_id),
            )
            return

        params: Dict[str, Any] = {"DBInstanceIdentifier": handle.instance_id}
        if handle.cluster_id is None:
            params["SkipFinalSnapshot"] = True
            params["DeleteAutomatedBackups"] = True
        await self._delete(
            handle,
            self.rds.delete_db_instance,
            params,
            lambda: self._describe_instance(handle.instance_id),
        )

    async def _delete(self, handle, delete, params, describe) -> None:
        """Issue the delete and wait until the resource is gone.

        The bastion security group stays attached until deletion completes,
        and a cluster cannot be deleted while its instance still exists.
        """
        self.logger.info(f"Deleting {handle.label}")
        try:
            await self._call(delete, **params)
        except Exception as e:
            if self._is_gone(e):
                return
            if not error_code_in(_ALREADY_DELETING)(e):
                raise self._release_error(handle, e)

        async def gone():
            try:
                await describe()
            except Exception as e:
                if self._is_gone(e):
                    return True
                raise
            return None

        try:
            await self._wait(
                gone,
                interval=self.settings.database_poll_interval,
                label=f"deletion of {handle.label}",
                cancellable=False,
            )
        except Exception as e:
            raise self._release_error(handle, e)
