"""Exception log for a cleaner run.

Records every unexpected or destructive-path failure as a JSON entry with:
- Timestamp
- Exception type, message and stack trace
- Context (repository, stage, git command, stderr)
"""

import json
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class ExceptionLogger:
    """Appends exceptions with full context to a run-scoped log file."""

    def __init__(self, log_file_path: Path):
        """Initialize exception logger with specific log file path.

        Args:
            log_file_path: Path to the log file for writing exceptions
        """
        self.log_file_path = Path(log_file_path)

    @classmethod
    def for_run(cls, log_dir: Path, timestamp: str) -> "ExceptionLogger":
        """Create the logger for one run inside its log directory.

        Args:
            log_dir: Run log directory (created if missing)
            timestamp: Run timestamp used to name the file

        Returns:
            ExceptionLogger writing to ``errors-<timestamp>.log``
        """
        log_dir.mkdir(parents=True, exist_ok=True)
        return cls(log_dir / f"errors-{timestamp}.log")

    def log_exception(
        self,
        exception: BaseException,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an exception with full context.

        Args:
            exception: The exception to log
            context: Additional context data to include in log (optional)
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "stack_trace": "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            ),
            "context": context or {},
        }

        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file_path, "a") as f:
            f.write(json.dumps(log_entry, indent=2, default=str))
            f.write("\n---\n")
