"""Installing the storage tool packages."""

from __future__ import annotations

from typing import Sequence

from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, run_checked


log = LoggerFactory.for_system()


def install_packages(runner: CommandRunner, packages: Sequence[str]) -> None:
    if not packages:
        log.debug("No packages to install")
        return
    log.info(f"Installing {', '.join(packages)}")
    run_checked(runner, "apt-get", ["install", "-y", *packages])
