"""
Log events written to the JSONL event log.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class LogEvent:
    """Base class for all log events."""

    run_id: str
    event_type: str = ""
    timestamp: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}
        if self.timestamp is None:
            self.timestamp = datetime.now()


@dataclass
class RunStarted(LogEvent):
    """Event emitted when a provisioning run starts."""

    source_identifier: str = ""
    restore_kind: str = ""
    bastion: bool = False

    def __post_init__(self):
        super().__post_init__()
        self.event_type = "run_started"


@dataclass
class RunCompleted(LogEvent):
    """Event emitted when a run has been torn down."""

    exit_status: int = 0
    duration_seconds: float = 0.0
    released_count: int = 0
    failed_releases: int = 0

    def __post_init__(self):
        super().__post_init__()
        self.event_type = "run_completed"


@dataclass
class StageCompleted(LogEvent):
    """Event emitted when an orchestration stage finishes."""

    stage: str = ""
    success: bool = False
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        self.event_type = "stage_completed"


@dataclass
class ResourceAcquired(LogEvent):
    """Event emitted when a resource is recorded in the ledger."""

    kind: str = ""
    label: str = ""

    def __post_init__(self):
        super().__post_init__()
        self.event_type = "resource_acquired"


@dataclass
class ResourceReleased(LogEvent):
    """Event emitted for every release attempt during teardown."""

    kind: str = ""
    label: str = ""
    success: bool = False
    error_message: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        self.event_type = "resource_released"
