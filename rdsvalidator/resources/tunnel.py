"""
SSH tunnel through the bastion to the restored database.
"""

import asyncio
import os
import signal
from pathlib import Path
from typing import List, Union

from ..errors import ProvisioningError
from .base import ResourceProvider
from .handles import ExternalProcess, ResourceKind

SSH_OPTIONS = [
    "-o",
    "BatchMode=yes",
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    "UserKnownHostsFile=/dev/null",
    "-o",
    "ConnectTimeout=5",
]


class TunnelProvider(ResourceProvider):
    """
    Waits for SSH on the proxy host, then forwards a local port to the
    database through it with a background ``ssh -N -L`` process.
    """

    kind = ResourceKind.EXTERNAL_PROCESS

    executable = "ssh"

    def ssh_command(
        self, host: str, user: str, key_file: Union[str, Path], *args: str
    ) -> List[str]:
        return [
            self.executable,
            "-i",
            str(key_file),
            *SSH_OPTIONS,
            *args,
            f"{user}@{host}",
        ]

    async def wait_reachable(self, host: str, user: str, key_file: Union[str, Path]) -> None:
        """Poll until ``ssh <user>@<host> uname`` succeeds."""
        cmd = self.ssh_command(host, user, key_file) + ["uname"]

        async def reachable():
            self.logger.debug(f"Running command: {' '.join(cmd)}")
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate()
            if process.returncode == 0:
                return True
            self.logger.debug(
                f"ssh to {host} not ready: {stderr.decode('utf-8', 'replace').strip()}"
            )
            return None

        await self._wait(
            reachable,
            interval=self.settings.ssh_poll_interval,
            label=f"ssh {user}@{host}",
        )

    async def acquire(
        self,
        host: str,
        user: str,
        key_file: Union[str, Path],
        db_host: str,
        remote_port: int,
        local_port: int,
    ) -> ExternalProcess:
        await self.wait_reachable(host, user, key_file)

        forward = f"{local_port}:{db_host}:{remote_port}"
        cmd = self.ssh_command(host, user, key_file, "-N", "-L", forward)
        self.logger.info(f"Forwarding localhost:{local_port} to {db_host}:{remote_port} via {host}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProvisioningError(
                f"Failed to start ssh: {e}", kind=self.kind.value, identifier=host
            ) from e

        try:
            await asyncio.wait_for(
                process.wait(), timeout=self.settings.tunnel_grace_period
            )
        except asyncio.TimeoutError:
            return ExternalProcess(
                pid=process.pid,
                description=f"ssh tunnel {forward}",
                process=process,
            )

        stderr = await process.stderr.read() if process.stderr else b""
        raise ProvisioningError(
            f"ssh tunnel exited with status {process.returncode}: "
            f"{stderr.decode('utf-8', 'replace').strip()}",
            kind=self.kind.value,
            identifier=host,
        )

    async def release(self, handle: ExternalProcess) -> None:
        process = handle.process
        self.logger.info(f"Stopping {handle.label}")

        if process is None:
            try:
                os.kill(handle.pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
            return

        if process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(
                process.wait(), timeout=self.settings.tunnel_grace_period
            )
        except asyncio.TimeoutError:
            self.logger.warning(f"{handle.label} ignored SIGTERM, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
