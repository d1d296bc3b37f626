"""
Console progress for readiness waits and orchestration stages.
"""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.status import Status

from .events import StageCompleted
from .log_manager import LogManager


class ProgressTracker:
    """Spinner per readiness wait plus a ✅/❌ line per finished stage."""

    def __init__(self, log_manager: LogManager, console: Optional[Console] = None):
        self.log_manager = log_manager
        self.console = console or Console(stderr=True)
        self._status: Optional[Status] = None
        self._label: Optional[str] = None

    def poll_attempt(self, label: str, attempt: int) -> None:
        """Report one readiness attempt for ``label``."""
        message = f"[bold blue]Waiting on {label}[/] (attempt {attempt})"
        if self._status is None or self._label != label:
            self._stop_status()
            self._status = self.console.status(message)
            self._status.start()
            self._label = label
        else:
            self._status.update(message)

    def add_step_message(self, message: str, completed: bool = True) -> None:
        """Print a stage line, replacing any running spinner."""
        self._stop_status()
        status_icon = "✅" if completed else "❌"
        self.console.print(f"{message} {status_icon}")

    def info(self, message: str) -> None:
        """Print a plain message without touching the spinner state."""
        self._stop_status()
        self.console.print(message)

    def close(self) -> None:
        """Stop any running spinner."""
        self._stop_status()

    def _stop_status(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None
            self._label = None

    def track_stage(self, stage: str, run_id: str):
        """Async context manager printing and logging the outcome of a stage."""

        class StageTracker:
            def __init__(self, tracker, stage, run_id):
                self.tracker = tracker
                self.stage = stage
                self.run_id = run_id
                self.start_time = None

            async def __aenter__(self):
                self.start_time = datetime.utcnow()
                return self

            async def __aexit__(self, exc_type, exc_val, exc_tb):
                end_time = datetime.utcnow()
                duration = (end_time - self.start_time).total_seconds()
                success = exc_type is None

                self.tracker.add_step_message(self.stage, completed=success)

                await self.tracker.log_manager.emit_event(
                    StageCompleted(
                        timestamp=end_time,
                        run_id=self.run_id,
                        stage=self.stage,
                        success=success,
                        duration_seconds=duration,
                        error_message=str(exc_val) if exc_val else None,
                    )
                )
                return False

        return StageTracker(self, stage, run_id)
