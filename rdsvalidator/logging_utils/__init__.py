"""
Logging for rdsvalidator.

Standard library logging for diagnostics, a JSONL event log for run
history, and rich console progress for readiness waits.
"""

from .events import (
    LogEvent,
    ResourceAcquired,
    ResourceReleased,
    RunCompleted,
    RunStarted,
    StageCompleted,
)
from .log_manager import LogManager
from .progress_tracker import ProgressTracker
from .setup import StructuredFormatter, configure_logging

__all__ = [
    "LogManager",
    "LogEvent",
    "RunStarted",
    "RunCompleted",
    "StageCompleted",
    "ResourceAcquired",
    "ResourceReleased",
    "ProgressTracker",
    "StructuredFormatter",
    "configure_logging",
]
