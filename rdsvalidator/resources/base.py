"""
Base resource provider interface.

Each provisionable resource kind has a provider that knows how to create
the resource, wait until it is usable, and delete it again. Providers share
a :class:`RunContext` carrying the settings, the run's cancel event, and the
progress callback used while polling.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, TypeVar

import botocore.exceptions

from ..config.settings import ProvisioningSettings
from ..errors import ProvisioningError, ReleaseError
from ..orchestration.poller import (
    Check,
    ProgressCallback,
    RetryPolicy,
    await_ready,
    never_retry,
)
from .handles import ResourceHandle, ResourceKind

T = TypeVar("T")


@dataclass
class RunContext:
    """State shared by every provider taking part in one run."""

    settings: ProvisioningSettings = field(default_factory=ProvisioningSettings)
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    progress: Optional[ProgressCallback] = None


def aws_error_code(exc: BaseException) -> Optional[str]:
    """Return the AWS error code of a botocore ``ClientError``, if any."""
    if isinstance(exc, botocore.exceptions.ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def error_code_in(codes: Iterable[str]) -> RetryPolicy:
    """Build a retry policy treating the given AWS error codes as transient."""
    code_set = set(codes)

    def policy(exc: BaseException) -> bool:
        return aws_error_code(exc) in code_set

    return policy


class ResourceProvider(ABC):
    """
    Base interface for resource providers.

    Subclasses implement ``acquire(...)`` (with kind-specific parameters),
    returning a handle only once the resource is ready, and :meth:`release`.
    """

    kind: ResourceKind

    # AWS error codes meaning "this resource is already gone"
    not_found_codes: frozenset = frozenset()

    def __init__(self, context: RunContext):
        self.context = context
        self.settings = context.settings
        self.logger = logging.getLogger(f"{self.__class__.__name__}")

    @abstractmethod
    async def release(self, handle: Any) -> None:
        """Delete the resource behind ``handle``; already-deleted is success."""

    async def _call(self, fn: Callable[..., T], **kwargs: Any) -> T:
        """Run a blocking SDK call in a worker thread."""
        return await asyncio.to_thread(fn, **kwargs)

    async def _wait(
        self,
        check: Check,
        *,
        interval: float,
        label: str,
        retry_on: RetryPolicy = never_retry,
        cancellable: bool = True,
    ) -> Any:
        """Poll ``check`` with the run's timeout and progress.

        Waits during release pass ``cancellable=False``: teardown must run
        to completion even after the run has been interrupted.
        """
        return await await_ready(
            check,
            interval=interval,
            label=label,
            cancel=self.context.cancel if cancellable else None,
            retry_on=retry_on,
            timeout=self.settings.poll_timeout,
            progress=self.context.progress,
        )

    def _is_gone(self, exc: BaseException) -> bool:
        return aws_error_code(exc) in self.not_found_codes

    def _provisioning_error(
        self, message: str, exc: BaseException, identifier: Optional[str] = None
    ) -> ProvisioningError:
        return ProvisioningError(
            f"{message}: {exc}",
            kind=self.kind.value,
            identifier=identifier,
            code=aws_error_code(exc),
        )

    def _release_error(self, handle: ResourceHandle, exc: BaseException) -> ReleaseError:
        return ReleaseError(str(exc), label=handle.label, code=aws_error_code(exc))

    async def _abandon(self, handle: ResourceHandle) -> None:
        """Best-effort release of a resource that never became ready."""
        self.logger.warning(
            f"Releasing {handle.label} which never became ready",
            extra={"kind": self.kind.value, "phase": "abandon"},
        )
        try:
            await self.release(handle)
        except Exception as e:
            self.logger.error(
                f"Failed to release {handle.label}; manual cleanup required: {e}",
                extra={"kind": self.kind.value, "phase": "abandon_failed"},
            )
