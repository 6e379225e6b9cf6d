"""
Structured event logging for reconciliation runs.
Writes JSON lines with run context next to the human-readable console log.
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
    Logger that emits both a console line and, optionally, a JSON line per event.

    Usage:
        logger = StructuredLogger("modcache", log_dir=Path("logs"))
        logger.info("artifact_fetched", artifact_id="238222", file_name="jei.jar")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Mirror events to the standard logger at debug level
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        self.json_log_path: Path | None = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"modcache_{timestamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Added to every JSON entry
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            # markup off: values may contain brackets
            self._logger.log(
                level, self._format_message(event, **context), extra={"markup": False}
            )
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ReconcileLogger:
    """Event vocabulary for a reconciliation run."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def run_started(self, manifest_entries: int, to_remove: int, to_fetch: int):
        self.logger.info(
            "run_started",
            manifest_entries=manifest_entries,
            to_remove=to_remove,
            to_fetch=to_fetch,
        )

    def artifact_removed(self, artifact_id: str, version_id: str, reason: str):
        self.logger.debug(
            "artifact_removed",
            artifact_id=artifact_id,
            version_id=version_id,
            reason=reason,
        )

    def artifact_fetched(
        self, artifact_id: str, version_id: str, file_name: str, size_bytes: int
    ):
        self.logger.debug(
            "artifact_fetched",
            artifact_id=artifact_id,
            version_id=version_id,
            file_name=file_name,
            size_bytes=size_bytes,
        )

    def artifact_failed(self, artifact_id: str, stage: str, error: str):
        self.logger.error(
            "artifact_failed", artifact_id=artifact_id, stage=stage, error=error
        )

    def run_completed(
        self, duration_s: float, fetched: int, removed: int, failed: int, saved: bool
    ):
        self.logger.info(
            "run_completed",
            duration_s=round(duration_s, 2),
            fetched=fetched,
            removed=removed,
            failed=failed,
            state_saved=saved,
        )


def create_structured_logger(
    log_dir: Path | None = None,
) -> tuple[StructuredLogger, ReconcileLogger]:
    """
    Create the run loggers.

    Returns:
        Tuple of (base_logger, reconcile_logger)
    """
    base = StructuredLogger(
        "modcache.events", log_dir=log_dir, enable_json=log_dir is not None
    )
    return base, ReconcileLogger(base)
