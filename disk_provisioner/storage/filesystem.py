"""Formatting and mounting the carved volume.

Each step is one external command; a failure raises CommandError with the
tool's stderr and nothing already done is rolled back.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import time

from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, run_checked
from disk_provisioner.storage.exceptions import NotFoundError, ProvisionError


log = LoggerFactory.for_mount()

DEVICE_WAIT_ATTEMPTS = 20
DEVICE_WAIT_DELAY = 0.5


def wait_for_device(
    runner: CommandRunner,
    device: str,
    attempts: int = DEVICE_WAIT_ATTEMPTS,
    delay: float = DEVICE_WAIT_DELAY,
) -> None:
    """Wait for udev to create the device node of a freshly carved volume."""
    if shutil.which("udevadm"):
        with contextlib.suppress(ProvisionError):
            runner.run("udevadm", ["settle", "--timeout=10"])

    for _ in range(attempts):
        if os.path.exists(device):  # noqa: PTH110
            log.debug(f"Device node found: {device}")
            return
        time.sleep(delay)
    raise NotFoundError("device node", f"{device} did not appear")


def format_volume(runner: CommandRunner, device: str, fstype: str) -> None:
    """Create a filesystem on ``device``, overwriting any existing signature."""
    log.info(f"Formatting {device} as {fstype}")
    run_checked(runner, f"mkfs.{fstype}", ["-f", device])


def ensure_mount_dir(runner: CommandRunner, path: str) -> None:
    run_checked(runner, "mkdir", ["-p", path])


def mount_volume(
    runner: CommandRunner, device: str, path: str, fstype: str, options: str
) -> None:
    log.info(f"Mounting {device} at {path} ({options})")
    run_checked(runner, "mount", ["-t", fstype, "-o", options, device, path])
