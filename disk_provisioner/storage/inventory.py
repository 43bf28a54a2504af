"""Block device discovery using lsblk.

Two lsblk reports feed disk classification:

    lsblk -dpno NAME,TYPE                    whole disks, one full path per line
    lsblk -J -o NAME,TYPE,MOUNTPOINT,FSTYPE  device tree as JSON (system and swap disks)

In the JSON report every top-level entry is a whole device and everything
stacked on it (partitions, RAID arrays, LVM volumes) is nested under
``children``. A device assembled from several disks, such as an md mirror,
is listed under each of its member disks.

``DiskSnapshot.capture()`` runs both queries once so that all roles in a run
are derived from the same view of the host.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from disk_provisioner.domain.models import DiskIdentifier
from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, failure_message
from disk_provisioner.storage.exceptions import ParseError, ToolExecutionError


log = LoggerFactory.for_inventory()

LIST_DISKS_ARGS = ("-dpno", "NAME,TYPE")
DEVICE_TREE_ARGS = ("-J", "-o", "NAME,TYPE,MOUNTPOINT,FSTYPE")


def query_lsblk(runner: CommandRunner, args: tuple[str, ...]) -> str:
    """Run lsblk and return its stdout as text."""
    result = runner.run("lsblk", args)
    if not result.success:
        raise ToolExecutionError(
            result.command_line, failure_message(result), result.returncode
        )
    return result.stdout_text()


def parse_disk_listing(text: str) -> list[DiskIdentifier]:
    """Parse ``lsblk -dpno NAME[,TYPE]`` output in listing order.

    Rows that carry a TYPE column other than ``disk`` are dropped; rows with
    only a name are kept.
    """
    disks: list[DiskIdentifier] = []
    seen: set[str] = set()
    for line in text.splitlines():
        parts = line.split()
        if not parts:
            continue
        if len(parts) > 1 and parts[1] != "disk":
            continue
        disk = DiskIdentifier.from_token(parts[0])
        if disk.path in seen:
            continue
        seen.add(disk.path)
        disks.append(disk)
    return disks


def parse_device_tree(text: str) -> list[dict]:
    """Top-level entries of ``lsblk -J`` output."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as error:
        raise ParseError("lsblk -J", f"invalid JSON: {error}") from error
    devices = data.get("blockdevices") if isinstance(data, dict) else None
    if not isinstance(devices, list):
        raise ParseError("lsblk -J", "no blockdevices list")
    return devices


def get_children(device: dict) -> list[dict]:
    return device.get("children", []) or []


def get_mountpoints(device: dict) -> list[str]:
    # util-linux 2.37+ reports "mountpoints" when asked for MOUNTPOINTS
    mountpoints = [device.get("mountpoint")]
    mountpoints.extend(device.get("mountpoints") or [])
    return [mountpoint for mountpoint in mountpoints if mountpoint]


def has_mountpoint(device: dict, mountpoint: str) -> bool:
    if mountpoint in get_mountpoints(device):
        return True
    return any(has_mountpoint(child, mountpoint) for child in get_children(device))


def has_fstype(device: dict, fstype: str) -> bool:
    if device.get("fstype") == fstype:
        return True
    return any(has_fstype(child, fstype) for child in get_children(device))


def device_identifier(device: dict) -> DiskIdentifier:
    name = device.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ParseError("lsblk -J", f"device without a name: {device!r}")
    return DiskIdentifier.from_token(name)


def list_all_disks(runner: CommandRunner) -> list[DiskIdentifier]:
    """All whole disks on the host, in the order lsblk reports them."""
    disks = parse_disk_listing(query_lsblk(runner, LIST_DISKS_ARGS))
    log.debug(f"lsblk found {len(disks)} disks: {', '.join(map(str, disks)) or '-'}")
    return disks


@dataclass(frozen=True)
class DiskSnapshot:
    """Raw lsblk reports captured once per run."""

    disk_listing: str
    device_tree: str

    @classmethod
    def capture(cls, runner: CommandRunner) -> DiskSnapshot:
        snapshot = cls(
            disk_listing=query_lsblk(runner, LIST_DISKS_ARGS),
            device_tree=query_lsblk(runner, DEVICE_TREE_ARGS),
        )
        log.debug("Captured disk snapshot")
        return snapshot

    def disks(self) -> list[DiskIdentifier]:
        return parse_disk_listing(self.disk_listing)

    def devices(self) -> list[dict]:
        return parse_device_tree(self.device_tree)
