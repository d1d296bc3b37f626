"""
Acquisition ledger.

Every resource is recorded the moment it is ready. Teardown releases the
recorded resources newest first, exactly once, whether it is started by the
normal exit path or by a signal.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..logging_utils.events import ResourceReleased
from ..logging_utils.log_manager import LogManager
from ..resources.handles import ResourceHandle

Release = Callable[[ResourceHandle], Awaitable[None]]


@dataclass
class UnwindReport:
    """Outcome of a teardown."""

    released: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def clean(self) -> bool:
        return not self.failures


class Ledger:
    """Ordered record of acquired resources with single-shot LIFO teardown."""

    def __init__(self, log_manager: Optional[LogManager] = None, run_id: str = ""):
        self.log_manager = log_manager
        self.run_id = run_id
        self.logger = logging.getLogger(self.__class__.__name__)

        self._lock = threading.Lock()
        self._handles: List[ResourceHandle] = []
        self._closed = False
        self._unwinding: Optional[asyncio.Future] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    @property
    def handles(self) -> Tuple[ResourceHandle, ...]:
        """Recorded handles, oldest first."""
        with self._lock:
            return tuple(self._handles)

    @property
    def closed(self) -> bool:
        """True once teardown has begun; no further records are accepted."""
        with self._lock:
            return self._closed

    def record(self, handle: ResourceHandle) -> bool:
        """Append ``handle``; returns False if teardown has already begun."""
        with self._lock:
            if self._closed:
                return False
            self._handles.append(handle)

        self.logger.info(
            f"Recorded {handle.label}",
            extra={"kind": handle.kind.value, "phase": "record"},
        )
        return True

    async def unwind(self, release: Release) -> UnwindReport:
        """
        Release every recorded handle, most recent first.

        A failing release is logged and the next handle is still released.
        The first call starts teardown; later calls perform no releases and
        wait for that teardown to finish, returning the same report.
        """
        with self._lock:
            self._closed = True
            if self._unwinding is None:
                self._unwinding = asyncio.ensure_future(self._release_all(release))
            unwinding = self._unwinding

        # Shielded so a caller being cancelled does not abort teardown
        return await asyncio.shield(unwinding)

    async def _release_all(self, release: Release) -> UnwindReport:
        report = UnwindReport()

        while True:
            with self._lock:
                if not self._handles:
                    break
                handle = self._handles.pop()

            try:
                await release(handle)
            except Exception as e:
                report.failures[handle.label] = str(e)
                self.logger.error(
                    f"Failed to release {handle.label}: {e}",
                    extra={
                        "kind": handle.kind.value,
                        "phase": "release_failed",
                        "error_type": type(e).__name__,
                    },
                )
                await self._emit(handle, success=False, error=str(e))
                continue

            report.released.append(handle.label)
            self.logger.info(
                f"Released {handle.label}",
                extra={"kind": handle.kind.value, "phase": "release"},
            )
            await self._emit(handle, success=True)

        return report

    async def _emit(
        self, handle: ResourceHandle, success: bool, error: Optional[str] = None
    ) -> None:
        if self.log_manager is None:
            return
        await self.log_manager.emit_event(
            ResourceReleased(
                run_id=self.run_id,
                kind=handle.kind.value,
                label=handle.label,
                success=success,
                error_message=error,
            )
        )
