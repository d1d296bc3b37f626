"""
EC2 key pairs for the ephemeral bastion.
"""

from dataclasses import replace

import aiofiles

from ..errors import RDSValidatorError
from ..utils.directories import create_private_file
from ..utils.naming import resource_name
from .base import ResourceProvider, RunContext, error_code_in
from .handles import Keypair, ResourceKind


class KeypairProvider(ResourceProvider):
    """Creates an ed25519 key pair and keeps its private key in a 0600 file."""

    kind = ResourceKind.KEYPAIR
    not_found_codes = frozenset({"InvalidKeyPair.NotFound"})

    def __init__(self, context: RunContext, ec2):
        super().__init__(context)
        self.ec2 = ec2

    async def acquire(self) -> Keypair:
        key_name = resource_name(self.settings.resource_prefix)
        self.logger.info(f"Creating keypair {key_name}")

        try:
            response = await self._call(
                self.ec2.create_key_pair, KeyName=key_name, KeyType="ed25519"
            )
        except Exception as e:
            raise self._provisioning_error("Failed to create keypair", e, key_name)

        handle = Keypair(key_pair_id=response["KeyPairId"], key_name=key_name)
        try:
            key_file = create_private_file(prefix=f"{key_name}-", suffix=".pem")
            handle = replace(handle, key_file=key_file)
            async with aiofiles.open(key_file, "w") as f:
                await f.write(response["KeyMaterial"])
        except Exception as e:
            await self._abandon(handle)
            raise self._provisioning_error(
                "Failed to write private key", e, handle.key_pair_id
            ) from e

        async def visible():
            described = await self._call(
                self.ec2.describe_key_pairs, KeyNames=[key_name]
            )
            return handle if described.get("KeyPairs") else None

        try:
            return await self._wait(
                visible,
                interval=self.settings.keypair_poll_interval,
                label=handle.label,
                retry_on=error_code_in(self.not_found_codes),
            )
        except Exception as e:
            await self._abandon(handle)
            if isinstance(e, RDSValidatorError):
                raise
            raise self._provisioning_error(
                "Keypair never became visible", e, handle.key_pair_id
            ) from e

    async def release(self, handle: Keypair) -> None:
        self.logger.info(f"Deleting {handle.label}")
        try:
            await self._call(self.ec2.delete_key_pair, KeyPairId=handle.key_pair_id)
        except Exception as e:
            if not self._is_gone(e):
                raise self._release_error(handle, e)
        finally:
            if handle.key_file is not None:
                handle.key_file.unlink(missing_ok=True)
