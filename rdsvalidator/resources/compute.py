"""
EC2 bastion instance.
"""

from typing import Any, Dict, Optional

from ..errors import ProvisioningError, RDSValidatorError
from .base import ResourceProvider, RunContext, error_code_in
from .handles import ComputeInstance, ResourceKind

_FAILED_STATES = {"shutting-down", "terminated", "stopping", "stopped"}


class ComputeInstanceProvider(ResourceProvider):
    """Launches the newest matching Ubuntu image with a public IP."""

    kind = ResourceKind.COMPUTE_INSTANCE
    not_found_codes = frozenset({"InvalidInstanceID.NotFound"})

    def __init__(self, context: RunContext, ec2):
        super().__init__(context)
        self.ec2 = ec2

    async def latest_image_id(self) -> str:
        """Return the most recently created image matching the bastion filters."""
        try:
            response = await self._call(
                self.ec2.describe_images,
                Filters=[
                    {"Name": "name", "Values": [self.settings.bastion_image_name]},
                    {
                        "Name": "architecture",
                        "Values": [self.settings.bastion_architecture],
                    },
                    {"Name": "virtualization-type", "Values": ["hvm"]},
                ],
                Owners=[self.settings.bastion_image_owner],
            )
        except Exception as e:
            raise self._provisioning_error("Failed to look up bastion image", e)

        images = response.get("Images", [])
        if not images:
            raise ProvisioningError(
                f"No image matches {self.settings.bastion_image_name}",
                kind=self.kind.value,
            )

        # CreationDate is ISO 8601, so string order is chronological order
        images.sort(key=lambda image: image.get("CreationDate", ""))
        return images[-1]["ImageId"]

    async def acquire(self, group_id: str, subnet_id: str, key_name: str) -> ComputeInstance:
        image_id = await self.latest_image_id()

        try:
            response = await self._call(
                self.ec2.run_instances,
                MinCount=1,
                MaxCount=1,
                ImageId=image_id,
                InstanceType=self.settings.bastion_instance_type,
                KeyName=key_name,
                NetworkInterfaces=[
                    {
                        "AssociatePublicIpAddress": True,
                        "DeleteOnTermination": True,
                        "DeviceIndex": 0,
                        "Groups": [group_id],
                        "SubnetId": subnet_id,
                    }
                ],
                TagSpecifications=[
                    {
                        "ResourceType": "instance",
                        "Tags": [
                            {"Key": "Name", "Value": self.settings.resource_prefix}
                        ],
                    }
                ],
            )
        except Exception as e:
            raise self._provisioning_error("Failed to launch bastion", e, image_id)

        instance_id = response["Instances"][0]["InstanceId"]
        self.logger.info(f"Creating ec2 instance {instance_id}")
        # Not ready yet; only used to release the instance if waiting fails
        pending = ComputeInstance(instance_id=instance_id, public_ip="")

        async def has_public_ip():
            instance = await self._describe(instance_id)
            if instance is None:
                return None
            state = instance.get("State", {}).get("Name")
            if state in _FAILED_STATES:
                raise ProvisioningError(
                    f"Instance entered state {state} while starting",
                    kind=self.kind.value,
                    identifier=instance_id,
                )
            public_ip = instance.get("PublicIpAddress")
            if public_ip:
                return ComputeInstance(instance_id=instance_id, public_ip=public_ip)
            return None

        try:
            return await self._wait(
                has_public_ip,
                interval=self.settings.compute_poll_interval,
                label=f"ec2 instance {instance_id}",
                retry_on=error_code_in(self.not_found_codes),
            )
        except Exception as e:
            await self._abandon(pending)
            if isinstance(e, RDSValidatorError):
                raise
            raise self._provisioning_error(
                "Bastion never became reachable", e, instance_id
            ) from e

    async def _describe(self, instance_id: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            self.ec2.describe_instances, InstanceIds=[instance_id]
        )
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance
        return None

    async def release(self, handle: ComputeInstance) -> None:
        self.logger.info(f"Terminating {handle.label}")
        try:
            await self._call(
                self.ec2.terminate_instances, InstanceIds=[handle.instance_id]
            )
        except Exception as e:
            if self._is_gone(e):
                return
            raise self._release_error(handle, e)

        # The security group cannot be deleted until the instance is gone
        async def terminated():
            try:
                instance = await self._describe(handle.instance_id)
            except Exception as e:
                if self._is_gone(e):
                    return True
                raise
            if instance is None:
                return True
            return True if instance["State"]["Name"] == "terminated" else None

        try:
            await self._wait(
                terminated,
                interval=self.settings.compute_poll_interval,
                label=f"termination of {handle.label}",
                cancellable=False,
            )
        except Exception as e:
            raise self._release_error(handle, e)
