"""
Structured logging system for the diagnostic log.
Provides JSON-formatted log lines with context and metadata, appended to a file
inside the tool installation directory.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Every entry is mirrored to the standard logger and appended as one JSON
    object per line to the diagnostic log. Appends are best-effort: a failing
    write is reported on stderr and never raised to the caller.

    Usage:
        logger = StructuredLogger("dba_downloader", log_path=tools.log_path)
        logger.error("download_failed",
                     argv=["yt-dlp", "..."],
                     exit_code=1,
                     stderr="ERROR: Unsupported URL")
    """

    def __init__(
        self,
        name: str,
        log_path: Path | None = None,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_path: JSON lines file to append to (None = disabled)
            enable_console: Mirror entries to the standard logger
        """
        self.name = name
        self.log_path = log_path
        self.enable_json = log_path is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    def _format_message(self, event: str, **context) -> str:
        """Format message for console output."""
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        """Append a structured log entry to the JSON lines file."""
        if not self.log_path:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except (OSError, TypeError, ValueError) as e:
            # Fallback to stderr if JSON logging fails
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        """Log debug event."""
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        """Log info event."""
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        """Log warning event."""
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        """Log error event."""
        self._emit(logging.ERROR, event, **context)


class ProvisionLogger:
    """Specialized logger for tool provisioning events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def tool_present(self, tool: str, path: Path):
        self.logger.debug("tool_present", tool=tool, path=str(path))

    def tool_installed(self, tool: str, path: Path, size_bytes: int, duration_s: float):
        """Log a tool downloaded and installed."""
        self.logger.info(
            "tool_installed",
            tool=tool,
            path=str(path),
            size_mb=round(size_bytes / (1024 * 1024), 2),
            duration_s=round(duration_s, 2),
        )

    def tool_failed(self, tool: str, url: str, error: str, required: bool):
        """Log a tool that could not be provisioned."""
        log_fn = self.logger.error if required else self.logger.warning
        log_fn(
            "tool_install_failed",
            tool=tool,
            url=url,
            error=error,
            required=required,
        )


class ProcessLogger:
    """Specialized logger for engine process events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def started(self, argv: list[str], pid: int):
        self.logger.info("process_started", argv=argv, pid=pid)

    def finished(self, argv: list[str], exit_code: int | None, stderr: str):
        """Log process exit, as an error when the exit code is non-zero."""
        if exit_code == 0:
            self.logger.info("process_finished", exit_code=exit_code)
            return
        self.logger.error(
            "process_failed",
            argv=argv,
            exit_code=exit_code,
            stderr=stderr,
        )

    def cancelled(self, argv: list[str], pid: int):
        """Log a user cancellation. Not an error."""
        self.logger.info("process_cancelled", argv=argv, pid=pid)

    def spawn_failed(self, argv: list[str], reason: str):
        self.logger.error("process_spawn_failed", argv=argv, reason=reason)

    def probe_failed(self, argv: list[str], exit_code: int | None, stderr: str):
        self.logger.error(
            "probe_failed",
            argv=argv,
            exit_code=exit_code,
            stderr=stderr,
        )

    def probe_unparseable(self, url: str, error: str):
        self.logger.warning("probe_parse_error", url=url, error=error)


def create_structured_logger(
    log_path: Path | None = None,
) -> tuple[StructuredLogger, ProvisionLogger, ProcessLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, provision_logger, process_logger)
    """
    base = StructuredLogger("dba_downloader", log_path=log_path)
    return base, ProvisionLogger(base), ProcessLogger(base)
