"""Disk classification: system disks, swap disk and data disk candidates.

Roles:
    System         a disk holding the root filesystem
    Swap           the disk holding an active swap device
    DataCandidate  every other disk whose name matches a data disk pattern
                   (sd, hd, vd, nvme by default)
    Excluded       everything else

System disk detection is pluggable. ``StrictSystemDiskDetector`` reports
every top-level disk whose device tree carries the ``/`` mountpoint, so both
members of a RAID root are system disks.
``HeuristicSystemDiskDetector`` picks the first disk in listing order as long
as something is mounted at ``/`` at all, which is only a proxy for the root
disk: on hosts where the root disk is not listed first it names the wrong one.

When the system or swap disk cannot be found, a sentinel identifier is used
instead so that data disk selection still runs; sentinels never match a real
disk.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from disk_provisioner.config.settings import ProvisionSettings
from disk_provisioner.domain.models import (
    SENTINEL_SWAP_DISK,
    SENTINEL_SYSTEM_DISK,
    DiskClassification,
    DiskIdentifier,
    MatchMode,
)
from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner
from disk_provisioner.storage.exceptions import NotFoundError
from disk_provisioner.storage.inventory import (
    DEVICE_TREE_ARGS,
    DiskSnapshot,
    device_identifier,
    has_fstype,
    has_mountpoint,
    parse_device_tree,
    query_lsblk,
)


log = LoggerFactory.for_inventory()

ROOT_MOUNTPOINT = "/"
SWAP_FSTYPE = "swap"


def _top_level_disks(devices: Sequence[dict]) -> list[dict]:
    return [device for device in devices if device.get("type") == "disk"]


class SystemDiskDetector(Protocol):
    def detect(self, devices: Sequence[dict]) -> list[DiskIdentifier]:
        """Return the system disks (at least one) or raise NotFoundError."""


class HeuristicSystemDiskDetector:
    """First disk in listing order, provided some device is mounted at ``/``."""

    def detect(self, devices: Sequence[dict]) -> list[DiskIdentifier]:
        disks = _top_level_disks(devices)
        if not disks:
            raise NotFoundError("system disk", "no disks in listing")
        if not any(has_mountpoint(device, ROOT_MOUNTPOINT) for device in devices):
            raise NotFoundError("system disk", "nothing is mounted at /")
        return [device_identifier(disks[0])]


class StrictSystemDiskDetector:
    """Every top-level disk whose device tree carries the ``/`` mountpoint."""

    def detect(self, devices: Sequence[dict]) -> list[DiskIdentifier]:
        disks = _top_level_disks(devices)
        if not disks:
            raise NotFoundError("system disk", "no disks in listing")
        system_disks = [
            device_identifier(disk)
            for disk in disks
            if has_mountpoint(disk, ROOT_MOUNTPOINT)
        ]
        if not system_disks:
            raise NotFoundError("system disk", "no disk carries the / mountpoint")
        return system_disks


DETECTORS = {
    "strict": StrictSystemDiskDetector,
    "heuristic": HeuristicSystemDiskDetector,
}


def make_detector(name: str) -> SystemDiskDetector:
    return DETECTORS[name]()


def swap_disk_from_devices(devices: Sequence[dict]) -> DiskIdentifier:
    """The first top-level device with a swap filesystem anywhere below it."""
    for device in devices:
        if has_fstype(device, SWAP_FSTYPE):
            return device_identifier(device)
    raise NotFoundError("swap disk")


def find_system_disks(
    runner: CommandRunner, detector: Optional[SystemDiskDetector] = None
) -> list[DiskIdentifier]:
    """Query lsblk and return every disk hosting the root filesystem."""
    detector = detector or StrictSystemDiskDetector()
    return detector.detect(parse_device_tree(query_lsblk(runner, DEVICE_TREE_ARGS)))


def find_system_disk(
    runner: CommandRunner, detector: Optional[SystemDiskDetector] = None
) -> DiskIdentifier:
    """Query lsblk and return the (first) disk hosting the root filesystem."""
    return find_system_disks(runner, detector)[0]


def find_swap_disk(runner: CommandRunner) -> DiskIdentifier:
    """Query lsblk and return the disk hosting the first swap device."""
    return swap_disk_from_devices(parse_device_tree(query_lsblk(runner, DEVICE_TREE_ARGS)))


def select_data_disks(
    disks: Iterable[DiskIdentifier],
    system_disks: Sequence[DiskIdentifier],
    swap_disk: DiskIdentifier,
    patterns: Iterable[str],
    mode: MatchMode = MatchMode.SUBSTRING,
) -> list[DiskIdentifier]:
    """Drop the system and swap disks, keep names matching a data disk pattern."""
    patterns = tuple(patterns)
    excluded = [*system_disks, swap_disk]
    selected = []
    for disk in disks:
        if any(disk.matches(other, mode) for other in excluded):
            continue
        if any(pattern in disk.name for pattern in patterns):
            selected.append(disk)
    return selected


class DiskClassifier:
    """Derives every disk role from a single snapshot per instance."""

    def __init__(
        self,
        runner: CommandRunner,
        settings: ProvisionSettings,
        detector: Optional[SystemDiskDetector] = None,
    ):
        self.runner = runner
        self.settings = settings
        self.detector = detector or make_detector(settings.system_disk_detector)
        self.match_mode = MatchMode(settings.disk_match_mode)
        self._snapshot: Optional[DiskSnapshot] = None

    @property
    def snapshot(self) -> DiskSnapshot:
        if self._snapshot is None:
            self._snapshot = DiskSnapshot.capture(self.runner)
        return self._snapshot

    def list_all_disks(self) -> list[DiskIdentifier]:
        return self.snapshot.disks()

    def find_system_disks(self) -> list[DiskIdentifier]:
        return self.detector.detect(self.snapshot.devices())

    def find_system_disk(self) -> DiskIdentifier:
        return self.find_system_disks()[0]

    def find_swap_disk(self) -> DiskIdentifier:
        return swap_disk_from_devices(self.snapshot.devices())

    def _system_disks_or_sentinel(self) -> list[DiskIdentifier]:
        try:
            return self.find_system_disks()
        except NotFoundError as error:
            log.warning(f"{error}; continuing without system disk exclusion")
            return [DiskIdentifier.make_sentinel(SENTINEL_SYSTEM_DISK)]

    def _swap_disk_or_sentinel(self) -> DiskIdentifier:
        try:
            return self.find_swap_disk()
        except NotFoundError as error:
            log.info(f"{error}; continuing without swap disk exclusion")
            return DiskIdentifier.make_sentinel(SENTINEL_SWAP_DISK)

    def list_data_disks(self) -> list[DiskIdentifier]:
        return list(self.classify().data_disks)

    def classify(self) -> DiskClassification:
        disks = self.list_all_disks()
        system_disks = self._system_disks_or_sentinel()
        swap_disk = self._swap_disk_or_sentinel()
        data_disks = select_data_disks(
            disks,
            system_disks,
            swap_disk,
            self.settings.data_disk_patterns,
            self.match_mode,
        )
        log.info(
            f"System disks: {', '.join(map(str, system_disks))}, swap disk: {swap_disk}, "
            f"data disks: {', '.join(map(str, data_disks)) or 'none'}"
        )
        return DiskClassification(
            system_disks=tuple(system_disks),
            swap_disk=swap_disk,
            all_disks=tuple(disks),
            data_disks=tuple(data_disks),
        )
