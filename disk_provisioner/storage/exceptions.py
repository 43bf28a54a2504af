"""Custom exceptions for provisioning operations.

This module defines a hierarchy of exceptions for the provisioning run so that
each step can fail with a specific, inspectable error and the captured
diagnostic text of the external tool that failed.

Exception Hierarchy:
    ProvisionError (base)
        ├── CommandError
        │   ├── ToolExecutionError
        │   ├── PoolCreationError
        │   └── CarveError
        ├── ParseError
        ├── NotFoundError
        ├── QueryError
        ├── MountTableError
        ├── ConfigurationError
        └── ProvisioningFailedError

Usage:
    from disk_provisioner.storage.exceptions import NotFoundError

    if not data_disks:
        raise NotFoundError("data disks")
"""

from __future__ import annotations

from typing import Sequence


class ProvisionError(Exception):
    """Base exception for all provisioning operations."""


class CommandError(ProvisionError):
    """An external command failed."""

    def __init__(
        self,
        command: str,
        stderr: str = "",
        returncode: int | None = None,
    ):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        if stderr:
            detail = stderr
        elif returncode is None:
            detail = "command could not be executed"
        else:
            detail = f"exit status {returncode}"
        super().__init__(f"Command failed ({command}): {detail}")


class ToolExecutionError(CommandError):
    """A query tool is missing or exited with a non-zero status."""


class PoolCreationError(CommandError):
    """The storage pool could not be created."""


class CarveError(CommandError):
    """The block volume could not be carved from the pool."""


class ParseError(ProvisionError):
    """Tool output could not be decoded or did not have the expected shape."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not parse output of {source}: {reason}")


class NotFoundError(ProvisionError):
    """An expected disk or entry is absent."""

    def __init__(self, what: str, detail: str = ""):
        self.what = what
        self.detail = detail
        msg = f"No {what} found"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class QueryError(ProvisionError):
    """A pool property could not be read."""

    def __init__(self, pool: str, reason: str):
        self.pool = pool
        self.reason = reason
        super().__init__(f"Could not query pool {pool}: {reason}")


class MountTableError(ProvisionError):
    """The persistent mount table could not be read or updated."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Mount table {path}: {reason}")


class ConfigurationError(ProvisionError):
    """Settings file is unreadable or holds invalid values."""


class ProvisioningFailedError(ProvisionError):
    """A pipeline stage failed; stages completed before it are not undone."""

    def __init__(
        self,
        stage: str,
        completed_stages: Sequence[str],
        state_left: str,
        cause: Exception,
    ):
        self.stage = stage
        self.completed_stages = list(completed_stages)
        self.state_left = state_left
        self.cause = cause
        super().__init__(
            f"Provisioning failed at stage '{stage}': {cause}. "
            f"State left behind: {state_left}"
        )
