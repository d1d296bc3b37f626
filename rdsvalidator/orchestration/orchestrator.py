"""
Provisioning orchestrator.

Runs the stages of a :class:`ProvisioningPlan` in dependency order:

    pre scripts -> keypair -> firewall rule -> bastion -> database restore
    -> tunnel -> post scripts -> steady state -> teardown

Each resource is recorded in the :class:`Ledger` as soon as it is ready.
Whatever happens (success, a failing stage, or a signal), every recorded
resource is released in reverse order before :meth:`Orchestrator.run`
returns its exit status.
"""

import asyncio
import logging
import sys
import threading
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..errors import (
    EXIT_CLEANUP_INCOMPLETE,
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_OK,
    OperationCancelled,
    RDSValidatorError,
)
from ..logging_utils.events import ResourceAcquired, RunCompleted, RunStarted
from ..logging_utils.log_manager import LogManager
from ..logging_utils.progress_tracker import ProgressTracker
from ..resources.base import RunContext
from ..resources.handles import DatabaseInstance, ResourceHandle
from ..resources.releaser import Providers, Releaser
from ..resources.scripts import ScriptRunner
from .interrupt import InterruptCoordinator
from .ledger import Ledger, UnwindReport
from .plan import EnvironmentBindings, ProvisioningPlan, RestoreKind

T = TypeVar("T")

Confirm = Callable[[], Awaitable[None]]


async def wait_for_enter() -> None:
    """Wait until the operator presses Enter (or stdin is closed)."""
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def resolve(error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    def read() -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError) as e:
            loop.call_soon_threadsafe(resolve, e)
            return
        loop.call_soon_threadsafe(resolve, None)

    # Daemon thread: a pending readline must not keep the process alive
    threading.Thread(target=read, name="confirm", daemon=True).start()
    await future


def exit_status(report: UnwindReport, interrupted: bool, failed: bool) -> int:
    """Cleanup incomplete > interrupted > error > success."""
    if not report.clean:
        return EXIT_CLEANUP_INCOMPLETE
    if interrupted:
        return EXIT_INTERRUPTED
    if failed:
        return EXIT_ERROR
    return EXIT_OK


class Orchestrator:
    """Provisions the plan's resources, runs scripts, and tears down."""

    def __init__(
        self,
        plan: ProvisioningPlan,
        providers: Providers,
        context: RunContext,
        log_manager: LogManager,
        progress: ProgressTracker,
        scripts: Optional[ScriptRunner] = None,
        confirm: Confirm = wait_for_enter,
        run_id: Optional[str] = None,
    ):
        self.plan = plan
        self.providers = providers
        self.context = context
        self.settings = context.settings
        self.log_manager = log_manager
        self.progress = progress
        self.scripts = scripts or ScriptRunner(cancel=context.cancel)
        self.confirm = confirm
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.logger = logging.getLogger(self.__class__.__name__)

        self.ledger = Ledger(log_manager=log_manager, run_id=self.run_id)
        self.releaser = Releaser(providers)
        self.coordinator = InterruptCoordinator(context.cancel, self.teardown)
        self.bindings: Optional[EnvironmentBindings] = None
        self.error: Optional[BaseException] = None
        self._provisioning: Optional[asyncio.Future] = None

        # Releases of handles the ledger refused because teardown had begun
        self._inline_failures: Dict[str, str] = {}

    async def run(self) -> int:
        """Run every stage, tear down, and return the process exit status."""
        loop = asyncio.get_running_loop()
        started = loop.time()

        await self.log_manager.emit_event(
            RunStarted(
                run_id=self.run_id,
                source_identifier=self.plan.source_identifier,
                restore_kind=self.plan.restore_kind.value,
                bastion=self.plan.create_bastion,
            )
        )

        with self.coordinator:
            self._provisioning = asyncio.ensure_future(self._provision())
            try:
                await self._provisioning
            except OperationCancelled as e:
                self.logger.warning(f"Run interrupted: {e}")
            except RDSValidatorError as e:
                self.error = e
                self.logger.error(
                    f"Run failed: {e}",
                    extra={"phase": "provision", "error_type": type(e).__name__},
                )
            except Exception as e:
                self.error = e
                self.logger.exception(f"Unexpected error during run: {e}")
            finally:
                report = await self.teardown()
        await self.coordinator.wait()

        report.failures.update(self._inline_failures)
        self._summarize(report)

        interrupted = self.coordinator.interrupted or self.context.cancel.is_set()
        status = exit_status(report, interrupted, self.error is not None)

        await self.log_manager.emit_event(
            RunCompleted(
                run_id=self.run_id,
                exit_status=status,
                duration_seconds=loop.time() - started,
                released_count=len(report.released),
                failed_releases=len(report.failures),
            )
        )
        return status

    async def teardown(self) -> UnwindReport:
        """
        Unwind the ledger; safe to call more than once.

        A signal sets the cancel event before calling this, so the stage in
        flight stops at its next cancel check and releases anything it left
        half-created. Unwinding only starts once that has finished, so a
        recorded resource is never released while something created after
        it still depends on it.
        """
        if self._provisioning is not None and not self._provisioning.done():
            await asyncio.wait({self._provisioning})
        self.progress.close()
        return await self.ledger.unwind(self.releaser)

    # Stages

    async def _provision(self) -> None:
        plan = self.plan
        providers = self.providers

        if plan.pre_dir is not None:
            await self._stage("Pre scripts", lambda: self.scripts.run(plan.pre_dir))

        keypair = firewall = bastion = None
        if plan.create_bastion:
            keypair = await self._acquire("Keypair", providers.keypairs.acquire)
            firewall = await self._acquire(
                "Firewall rule", lambda: providers.firewall.acquire(plan.proxy_vpc)
            )
            bastion = await self._acquire(
                "Bastion",
                lambda: providers.compute.acquire(
                    firewall.group_id, plan.proxy_subnet, keypair.key_name
                ),
            )

        group_ids = [firewall.group_id] if firewall is not None else None
        database = await self._restore_database(group_ids)

        local_port = None
        if plan.uses_tunnel:
            if bastion is not None:
                host, key_file = bastion.public_ip, keypair.key_file
            else:
                host, key_file = plan.proxy_host, plan.proxy_key
            local_port = plan.local_port or (
                database.port + self.settings.local_port_offset
            )
            await self._acquire(
                "Tunnel",
                lambda: providers.tunnel.acquire(
                    host,
                    plan.proxy_user,
                    key_file,
                    database.address,
                    database.port,
                    local_port,
                ),
            )

        self.bindings = EnvironmentBindings.for_database(database, local_port)
        self.logger.info(
            f"Database reachable at {self.bindings.host}:{self.bindings.port}",
            extra={"phase": "bindings", **self.bindings.as_env()},
        )

        if plan.post_dir is not None:
            env = self.bindings.as_env()
            await self._stage("Post scripts", lambda: self.scripts.run(plan.post_dir, env))

        if plan.wait_for_confirmation:
            await self._stage("Steady", self._steady)

    async def _restore_database(self, group_ids: Optional[List[str]]) -> DatabaseInstance:
        database = self.providers.database
        source = self.plan.source_identifier
        instance_class = self.plan.db_instance_class

        if self.plan.restore_kind is RestoreKind.CLUSTER:
            snapshot = await self._stage(
                "Find cluster snapshot", lambda: database.latest_cluster_snapshot(source)
            )
            cluster = await self._acquire(
                "Restore cluster", lambda: database.acquire_cluster(snapshot, group_ids)
            )
            return await self._acquire(
                "Create cluster instance",
                lambda: database.acquire_cluster_instance(cluster, instance_class),
            )

        snapshot = await self._stage(
            "Find instance snapshot", lambda: database.latest_instance_snapshot(source)
        )
        return await self._acquire(
            "Restore instance",
            lambda: database.acquire_instance(snapshot, instance_class, group_ids),
        )

    async def _steady(self) -> None:
        bindings = self.bindings
        self.progress.info(
            f"Environment ready: {bindings.host}:{bindings.port} "
            f"(db {bindings.name or '-'}, user {bindings.user or '-'}). "
            "Press Enter to tear down."
        )

        confirmed = asyncio.ensure_future(self.confirm())
        cancelled = asyncio.ensure_future(self.context.cancel.wait())
        try:
            await asyncio.wait({confirmed, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (confirmed, cancelled):
                if not task.done():
                    task.cancel()

        if self.context.cancel.is_set():
            raise OperationCancelled("Interrupted while waiting for confirmation")
        confirmed.result()

    # Helpers

    async def _stage(self, name: str, step: Callable[[], Awaitable[T]]) -> T:
        if self.context.cancel.is_set():
            raise OperationCancelled(f"Stopped before {name}")

        self.logger.info(f"Starting stage {name}", extra={"stage": name})
        async with self.progress.track_stage(name, self.run_id):
            return await step()

    async def _acquire(
        self, name: str, step: Callable[[], Awaitable[ResourceHandle]]
    ) -> ResourceHandle:
        handle = await self._stage(name, step)
        await self._record(handle)
        return handle

    async def _record(self, handle: ResourceHandle) -> None:
        if not self.ledger.record(handle):
            self.logger.warning(
                f"Teardown already started; releasing {handle.label} now",
                extra={"kind": handle.kind.value, "phase": "late_record"},
            )
            try:
                await self.releaser(handle)
            except Exception as e:
                self._inline_failures[handle.label] = str(e)
                self.logger.error(
                    f"Failed to release {handle.label}: {e}",
                    extra={"kind": handle.kind.value, "phase": "release_failed"},
                )
            raise OperationCancelled(f"Released {handle.label} acquired during teardown")

        await self.log_manager.emit_event(
            ResourceAcquired(
                run_id=self.run_id, kind=handle.kind.value, label=handle.label
            )
        )

    def _summarize(self, report: UnwindReport) -> None:
        for label in report.released:
            self.progress.add_step_message(f"Released {label}")
        for label, error in report.failures.items():
            self.progress.add_step_message(
                f"Failed to release {label} (manual cleanup required): {error}",
                completed=False,
            )
