from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "DISK_PROVISIONER_LOG_DIR",
        Path.home() / ".local" / "state" / "disk-provisioner" / "logs",
    )
)


def _console_filter(show_command_output: bool):
    """Keep records tagged "output" (raw command output) off the console unless asked for."""

    def _filter(record) -> bool:
        if "output" in record["extra"].get("tags", []):
            return show_command_output
        return True

    return _filter


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup logging with separate sinks for different log levels.

    Log Files:
    - operations.log: INFO+ events (30 day retention)
    - debug.log: DEBUG+ events, including raw command output, when --debug or
      --trace is enabled (7 day retention)
    - structured.jsonl: Structured JSON logs for analysis (30 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging and show raw command output on the console
        log_dir: Custom log directory (defaults to ~/.local/state/disk-provisioner/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_console_filter(show_command_output=trace),
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<level>{message}</level>"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="30 days",
        compression="zip",
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <20} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log (only when debugging)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="20 MB",
            retention="7 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name}:{function}:{line} | "
                "{extra[source]: <10} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking one provisioning stage with automatic timing.

    Logs stage start, completion and failure with duration. The exception is
    always re-raised.

    Example:
        with operation_context("create_pool", pool="disk") as log:
            log.debug("Purging mount table entries")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])
        log.info(f"{operation} started")

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the component.
    """

    @staticmethod
    def for_commands() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_inventory() -> Logger:
        """Logger for disk discovery and classification."""
        return logger.bind(source="inventory", tags=["inventory", "storage"])

    @staticmethod
    def for_pool(pool: str | None = None) -> Logger:
        """Logger for pool and volume operations."""
        return logger.bind(source="pool", tags=["pool", "storage"], pool=pool or "-")

    @staticmethod
    def for_mount() -> Logger:
        """Logger for filesystem, mount and mount table operations."""
        return logger.bind(source="mount", tags=["mount", "storage"])

    @staticmethod
    def for_service(service: str | None = None) -> Logger:
        """Logger for service relocation."""
        return logger.bind(
            source="service", tags=["service"], service=service or "-"
        )

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config, packages)."""
        return logger.bind(source="system", tags=["system"])
