"""
Pre/post script execution.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional, Union

from rich.console import Console

from ..errors import OperationCancelled, ProvisioningError, ScriptError


class ScriptRunner:
    """
    Runs every regular file in a directory, in name order, as a subprocess.

    Scripts inherit stdout/stderr. Bindings are added to the current
    environment. The first non-zero exit stops the directory with a
    :class:`ScriptError`. A script still running when ``cancel`` is set
    gets SIGTERM, and SIGKILL after ``grace_period`` seconds.
    """

    def __init__(
        self,
        cancel: Optional[asyncio.Event] = None,
        console: Optional[Console] = None,
        grace_period: float = 5.0,
    ):
        self.cancel = cancel
        self.grace_period = grace_period
        self.console = console or Console()
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def collect(directory: Union[str, Path]) -> List[Path]:
        path = Path(directory)
        if not path.is_dir():
            raise ProvisioningError(
                f"Script directory {path} does not exist", kind="scripts"
            )
        return sorted(
            (entry for entry in path.iterdir() if entry.is_file()),
            key=lambda entry: entry.name,
        )

    async def run(
        self,
        directory: Union[str, Path],
        bindings: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Run the scripts in ``directory`` and return how many were run."""
        scripts = self.collect(directory)
        env = dict(os.environ)
        if bindings:
            env.update(bindings)

        total = len(scripts)
        for index, script in enumerate(scripts, start=1):
            if self.cancel is not None and self.cancel.is_set():
                raise OperationCancelled(f"Stopped before running {script.name}")

            self.console.print(f"[{index}/{total}] Calling {script.name}", markup=False)
            self.logger.info(
                f"Running script {script}",
                extra={"script": str(script), "index": index, "total": total},
            )

            try:
                process = await asyncio.create_subprocess_exec(str(script), env=env)
            except OSError as e:
                raise ProvisioningError(
                    f"Failed to start script: {e}", kind="scripts", identifier=str(script)
                ) from e

            returncode = await self._wait(process, script)
            if returncode != 0:
                raise ScriptError(str(script), returncode)

        return total

    async def _wait(self, process: asyncio.subprocess.Process, script: Path) -> int:
        if self.cancel is None:
            return await process.wait()

        finished = asyncio.ensure_future(process.wait())
        cancelled = asyncio.ensure_future(self.cancel.wait())
        stopped = False
        try:
            await asyncio.wait({finished, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if process.returncode is None:
                stopped = True
                await self._stop(process, script)

        if stopped:
            raise OperationCancelled(f"Stopped {script.name} while it was running")
        return await finished

    async def _stop(self, process: asyncio.subprocess.Process, script: Path) -> None:
        self.logger.warning(
            f"Terminating script {script.name}",
            extra={"script": str(script), "phase": "script_cancelled"},
        )
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            self.logger.warning(f"Script {script.name} ignored SIGTERM, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
