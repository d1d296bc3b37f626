"""
Tests for the database inventory used by --list.
"""

import json
from unittest.mock import MagicMock

import pytest

from rdsvalidator.errors import ProvisioningError
from rdsvalidator.resources.listing import build_inventory, list_databases

CLUSTERS = [
    {
        "DBClusterIdentifier": "billing",
        "Status": "available",
        "DBClusterMembers": [
            {"DBInstanceIdentifier": "billing-1", "IsClusterWriter": True},
            {"DBInstanceIdentifier": "billing-2", "IsClusterWriter": False},
        ],
    },
    {"DBClusterIdentifier": "shared-analytics", "Status": "available"},
]

INSTANCES = [
    {"DBInstanceIdentifier": "orders", "DBInstanceStatus": "available"},
    {
        "DBInstanceIdentifier": "billing-1",
        "DBInstanceStatus": "available",
        "DBClusterIdentifier": "billing",
    },
    {"DBInstanceIdentifier": "legacy", "DBInstanceStatus": "stopped"},
]


class TestBuildInventory:
    def test_clustered_instances_excluded(self):
        """Test only standalone instances are listed."""
        inventory = build_inventory(CLUSTERS, INSTANCES)

        assert [i.identifier for i in inventory.instances] == ["orders", "legacy"]

    def test_cluster_members(self):
        inventory = build_inventory(CLUSTERS, INSTANCES)

        billing = inventory.clusters[0]
        assert billing.identifier == "billing"
        assert [(m.identifier, m.writer) for m in billing.members] == [
            ("billing-1", True),
            ("billing-2", False),
        ]
        assert inventory.clusters[1].members == []

    def test_json_shape(self):
        data = json.loads(build_inventory(CLUSTERS, INSTANCES).to_json())

        assert set(data) == {"clusters", "instances"}
        assert data["clusters"][0]["members"][0] == {"identifier": "billing-1", "writer": True}
        assert data["instances"][1] == {"identifier": "legacy", "status": "stopped"}


class TestListDatabases:
    @pytest.fixture
    def rds(self):
        pages = {
            "describe_db_clusters": [{"DBClusters": CLUSTERS[:1]}, {"DBClusters": CLUSTERS[1:]}],
            "describe_db_instances": [{"DBInstances": INSTANCES}],
        }
        paginators = {}

        def get_paginator(operation):
            paginator = MagicMock()
            paginator.paginate.return_value = pages[operation]
            paginators[operation] = paginator
            return paginator

        client = MagicMock()
        client.get_paginator.side_effect = get_paginator
        client.paginators = paginators
        return client

    @pytest.mark.asyncio
    async def test_lists_all_pages(self, rds):
        """Test every page is read and shared clusters are requested."""
        inventory = await list_databases(rds)

        assert [c.identifier for c in inventory.clusters] == ["billing", "shared-analytics"]
        assert len(inventory.instances) == 2
        rds.paginators["describe_db_clusters"].paginate.assert_called_once_with(IncludeShared=True)

    @pytest.mark.asyncio
    async def test_api_error(self, rds, client_error):
        rds.get_paginator.side_effect = client_error("AccessDenied")

        with pytest.raises(ProvisioningError) as exc_info:
            await list_databases(rds)

        assert exc_info.value.code == "AccessDenied"
