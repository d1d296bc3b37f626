"""
Root logger configuration: plain console output plus a JSON log file.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config.settings import MonitoringSettings
from ..utils.directories import get_secure_app_directory

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "stack_info",
    "exc_info",
    "exc_text",
    "run_id",
}


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line, keeping ``extra`` fields."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        run_id = getattr(record, "run_id", None)
        if run_id:
            log_data["run_id"] = run_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(
    settings: MonitoringSettings, verbose: bool = False
) -> Optional[Path]:
    """Configure the root logger and return the path of the log file, if any."""
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else settings.log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        log_path = get_secure_app_directory("rdsvalidator", "logs") / "rdsvalidator.log"

    file_handler = logging.FileHandler(log_path)
    if settings.log_format == "json":
        file_handler.setFormatter(StructuredFormatter())
    else:
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(file_handler)

    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return log_path
