"""
Tests for the acquisition ledger.
"""

import asyncio
from typing import List

import pytest

from rdsvalidator.errors import ReleaseError
from rdsvalidator.orchestration.ledger import Ledger, UnwindReport
from rdsvalidator.resources.handles import (
    ComputeInstance,
    ExternalProcess,
    FirewallRule,
    Keypair,
)


def make_handles(count: int):
    return [Keypair(key_pair_id=f"key-{i}", key_name=f"rdsvalidator-{i}") for i in range(count)]


class RecordingRelease:
    """Release callable remembering what it released."""

    def __init__(self, failing=(), delay: float = 0):
        self.released: List[str] = []
        self.failing = set(failing)
        self.delay = delay

    async def __call__(self, handle) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.released.append(handle.label)
        if handle.label in self.failing:
            raise ReleaseError("still attached", label=handle.label)


class TestLedgerRecord:
    """Recording acquisitions."""

    def test_record_preserves_order(self):
        """Test handles are kept in acquisition order."""
        ledger = Ledger()
        handles = make_handles(3)

        for handle in handles:
            assert ledger.record(handle) is True

        assert ledger.handles == tuple(handles)
        assert len(ledger) == 3

    @pytest.mark.asyncio
    async def test_record_refused_after_unwind(self):
        """Test late records are refused once teardown has begun."""
        ledger = Ledger()
        await ledger.unwind(RecordingRelease())

        assert ledger.closed
        assert ledger.record(FirewallRule(group_id="sg-1")) is False
        assert len(ledger) == 0


class TestLedgerUnwind:
    """Reverse-order teardown."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 1, 2, 5])
    async def test_unwind_reverses_record_order(self, count):
        """Test N acquisitions are released in exact reverse order."""
        ledger = Ledger()
        handles = make_handles(count)
        for handle in handles:
            ledger.record(handle)
        release = RecordingRelease()

        report = await ledger.unwind(release)

        expected = [handle.label for handle in reversed(handles)]
        assert release.released == expected
        assert report.released == expected
        assert report.clean
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_mixed_kinds(self):
        """Test unwinding a realistic mix of handle kinds."""
        ledger = Ledger()
        handles = [
            Keypair(key_pair_id="key-1", key_name="rdsvalidator-a"),
            FirewallRule(group_id="sg-1", group_name="rdsvalidator-a"),
            ComputeInstance(instance_id="i-1", public_ip="198.51.100.7"),
            ExternalProcess(pid=99, description="ssh tunnel"),
        ]
        for handle in handles:
            ledger.record(handle)
        release = RecordingRelease()

        await ledger.unwind(release)

        assert release.released == [
            "ssh tunnel (pid 99)",
            "ec2 instance i-1 (198.51.100.7)",
            "security group rdsvalidator-a (sg-1)",
            "keypair rdsvalidator-a (key-1)",
        ]

    @pytest.mark.asyncio
    async def test_second_unwind_releases_nothing(self):
        """Test unwind is idempotent."""
        ledger = Ledger()
        for handle in make_handles(3):
            ledger.record(handle)
        release = RecordingRelease()

        first = await ledger.unwind(release)
        second = await ledger.unwind(release)

        assert len(release.released) == 3
        assert second is first

    @pytest.mark.asyncio
    async def test_concurrent_unwind_waits_for_first(self):
        """Test a second caller waits for the in-flight teardown."""
        ledger = Ledger()
        for handle in make_handles(3):
            ledger.record(handle)
        release = RecordingRelease(delay=0.01)

        first, second = await asyncio.gather(ledger.unwind(release), ledger.unwind(release))

        assert len(release.released) == 3
        assert first is second
        assert first.released == release.released

    @pytest.mark.asyncio
    async def test_partial_failure_continues(self):
        """Test a failing release does not stop earlier handles from being released."""
        ledger = Ledger()
        handles = make_handles(4)
        for handle in handles:
            ledger.record(handle)
        failing = handles[2].label
        release = RecordingRelease(failing={failing})

        report = await ledger.unwind(release)

        assert release.released == [handle.label for handle in reversed(handles)]
        assert not report.clean
        assert list(report.failures) == [failing]
        assert failing not in report.released
        assert len(report.released) == 3

    @pytest.mark.asyncio
    async def test_unwind_survives_caller_cancellation(self):
        """Test cancelling a waiting caller does not abort teardown."""
        ledger = Ledger()
        for handle in make_handles(2):
            ledger.record(handle)
        release = RecordingRelease(delay=0.01)

        caller = asyncio.ensure_future(ledger.unwind(release))
        await asyncio.sleep(0)
        caller.cancel()
        report = await ledger.unwind(release)

        assert len(report.released) == 2

    @pytest.mark.asyncio
    async def test_release_events(self, log_manager):
        """Test every release attempt is written to the event log."""
        ledger = Ledger(log_manager=log_manager, run_id="run-1")
        handles = make_handles(2)
        for handle in handles:
            ledger.record(handle)

        await ledger.unwind(RecordingRelease(failing={handles[0].label}))

        events = log_manager.get_events_for_run("run-1")
        assert [event.event_type for event in events] == ["resource_released"] * 2
        assert [event.success for event in events] == [True, False]
        assert events[1].error_message.endswith("still attached")


class TestUnwindReport:
    def test_clean(self):
        assert UnwindReport().clean
        assert not UnwindReport(failures={"keypair": "boom"}).clean
