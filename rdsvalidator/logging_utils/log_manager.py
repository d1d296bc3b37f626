"""
Run event log: kept in memory and appended to ``events.jsonl``.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from ..utils.directories import get_secure_app_directory
from .events import LogEvent


def event_record(event: LogEvent) -> Dict[str, Any]:
    """Flatten an event into one JSON-ready dict, metadata merged in."""
    record = asdict(event)
    metadata = record.pop("metadata") or {}
    record["timestamp"] = event.timestamp.isoformat() if event.timestamp else ""
    return {**record, **metadata}


class LogManager:
    """Collects the events of a run and appends each to the JSONL event log."""

    def __init__(self, log_dir: Optional[str] = None):
        if log_dir is None:
            self.log_dir = get_secure_app_directory("rdsvalidator", "logs")
        else:
            self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("LogManager")
        self.events: List[LogEvent] = []
        self.event_log_file = self.log_dir / "events.jsonl"

    async def emit_event(self, event: LogEvent) -> None:
        """Record ``event``; a failing write is logged, never raised."""
        self.events.append(event)
        line = json.dumps(event_record(event), default=str)
        try:
            async with aiofiles.open(self.event_log_file, "a") as f:
                await f.write(line + "\n")
        except OSError as e:
            self.logger.error(f"Failed to write {event.event_type} event: {e}")

    def get_events_for_run(self, run_id: str) -> List[LogEvent]:
        """Get all events for a specific run."""
        return [event for event in self.events if event.run_id == run_id]
