"""
Security group granting temporary SSH access to the bastion.
"""

from ..errors import RDSValidatorError
from ..utils.naming import resource_name
from .base import ResourceProvider, RunContext, error_code_in
from .handles import FirewallRule, ResourceKind


class FirewallRuleProvider(ResourceProvider):
    """
    Creates a security group in the proxy VPC.

    The group allows SSH from ``ssh_ingress_cidr`` and all TCP traffic from
    members of the group itself, so a database restored into the same group
    is reachable from the bastion.
    """

    kind = ResourceKind.FIREWALL_RULE
    not_found_codes = frozenset({"InvalidGroup.NotFound", "InvalidGroupId.NotFound"})

    def __init__(self, context: RunContext, ec2):
        super().__init__(context)
        self.ec2 = ec2

    async def acquire(self, vpc_id: str) -> FirewallRule:
        group_name = resource_name(self.settings.resource_prefix)
        self.logger.info(f"Creating security group {group_name} in {vpc_id}")

        try:
            response = await self._call(
                self.ec2.create_security_group,
                GroupName=group_name,
                Description="grant temporary ssh access for rds validator",
                VpcId=vpc_id,
            )
        except Exception as e:
            raise self._provisioning_error(
                "Failed to create security group", e, group_name
            )

        handle = FirewallRule(
            group_id=response["GroupId"], group_name=group_name, vpc_id=vpc_id
        )

        async def egress_populated():
            described = await self._call(
                self.ec2.describe_security_groups, GroupIds=[handle.group_id]
            )
            groups = described.get("SecurityGroups", [])
            if groups and groups[0].get("IpPermissionsEgress"):
                return handle
            return None

        try:
            await self._wait(
                egress_populated,
                interval=self.settings.firewall_poll_interval,
                label=handle.label,
                retry_on=error_code_in(self.not_found_codes),
            )
            await self._authorize_ingress(handle)
        except Exception as e:
            await self._abandon(handle)
            if isinstance(e, RDSValidatorError):
                raise
            raise self._provisioning_error(
                "Security group never became ready", e, handle.group_id
            ) from e

        return handle

    async def _authorize_ingress(self, handle: FirewallRule) -> None:
        try:
            await self._call(
                self.ec2.authorize_security_group_ingress,
                GroupId=handle.group_id,
                IpPermissions=[
                    {
                        "IpProtocol": "tcp",
                        "FromPort": 22,
                        "ToPort": 22,
                        "IpRanges": [{"CidrIp": self.settings.ssh_ingress_cidr}],
                    },
                    {
                        "IpProtocol": "tcp",
                        "FromPort": 0,
                        "ToPort": 65535,
                        "UserIdGroupPairs": [{"GroupId": handle.group_id}],
                    },
                ],
            )
        except Exception as e:
            raise self._provisioning_error(
                "Failed to authorize ingress", e, handle.group_id
            )

    async def release(self, handle: FirewallRule) -> None:
        self.logger.info(f"Deleting {handle.label}")
        try:
            await self._call(self.ec2.delete_security_group, GroupId=handle.group_id)
        except Exception as e:
            if not self._is_gone(e):
                raise self._release_error(handle, e)
