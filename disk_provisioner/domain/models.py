"""Domain model for a provisioning run.

Type-safe values for the disks, mount table entries and service links that
flow between the storage steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath


SENTINEL_SYSTEM_DISK = "no_system_disk"
SENTINEL_SWAP_DISK = "no_swap_disk"


# ==============================================================================
# Disk Domain
# ==============================================================================


class DiskRole(Enum):
    SYSTEM = "system"
    SWAP = "swap"
    DATA_CANDIDATE = "data"
    EXCLUDED = "excluded"


class MatchMode(Enum):
    """How a listed disk is compared against the system and swap disks."""

    SUBSTRING = "substring"  # disk path contains the other disk's name
    NAME = "name"  # base names are equal


@dataclass(frozen=True)
class DiskIdentifier:
    """A block device, e.g. ``/dev/sdb`` (path) / ``sdb`` (name).

    Sentinels stand in for a disk that could not be identified and never
    match a real disk.
    """

    path: str
    sentinel: bool = False

    @classmethod
    def from_token(cls, token: str) -> DiskIdentifier:
        """Build from an lsblk NAME value (bare name or full path)."""
        name = token.strip()
        if not name:
            raise ValueError(f"Empty device name in {token!r}")
        if name.startswith("/"):
            return cls(path=name)
        return cls(path=f"/dev/{name}")

    @classmethod
    def make_sentinel(cls, label: str) -> DiskIdentifier:
        return cls(path=label, sentinel=True)

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def matches(self, other: DiskIdentifier, mode: MatchMode = MatchMode.SUBSTRING) -> bool:
        """Whether ``other`` refers to this disk under ``mode``."""
        if self.sentinel or other.sentinel:
            return False
        if mode is MatchMode.NAME:
            return self.name == other.name
        return other.name in self.path

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class DiskClassification:
    """Roles derived from one disk snapshot.

    ``system_disks`` holds every disk the root filesystem lives on (more than
    one when root is on a RAID or a volume group spanning disks).
    """

    system_disks: tuple[DiskIdentifier, ...]
    swap_disk: DiskIdentifier
    all_disks: tuple[DiskIdentifier, ...]
    data_disks: tuple[DiskIdentifier, ...]

    @property
    def system_disk(self) -> DiskIdentifier:
        if not self.system_disks:
            return DiskIdentifier.make_sentinel(SENTINEL_SYSTEM_DISK)
        return self.system_disks[0]

    def role_of(self, disk: DiskIdentifier) -> DiskRole:
        if disk in self.data_disks:
            return DiskRole.DATA_CANDIDATE
        if any(disk.name == system.name for system in self.system_disks):
            return DiskRole.SYSTEM
        if disk.name == self.swap_disk.name:
            return DiskRole.SWAP
        return DiskRole.EXCLUDED

    @property
    def roles(self) -> dict[DiskIdentifier, DiskRole]:
        return {disk: self.role_of(disk) for disk in self.all_disks}

    @property
    def excluded_disks(self) -> tuple[DiskIdentifier, ...]:
        return tuple(disk for disk in self.all_disks if disk not in self.data_disks)


# ==============================================================================
# Mount Table Domain
# ==============================================================================


@dataclass(frozen=True)
class MountTableEntry:
    """One line of the persistent mount table."""

    device: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0

    def to_line(self) -> str:
        return " ".join(
            [
                self.device,
                self.mountpoint,
                self.fstype,
                self.options,
                str(self.dump),
                str(self.passno),
            ]
        )

    @classmethod
    def from_line(cls, line: str) -> MountTableEntry | None:
        """Parse an fstab line; None for comments, blanks and malformed lines."""
        line = line.split("#", 1)[0].strip()
        if not line:
            return None
        parts = line.split()
        if len(parts) != 6:
            return None
        device, mountpoint, fstype, options, dump, passno = parts
        try:
            return cls(device, mountpoint, fstype, options, int(dump), int(passno))
        except ValueError:
            return None


# ==============================================================================
# Service Domain
# ==============================================================================


class RelocationState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    MOVED = "moved"
    LINKED = "linked"
    RESTARTED = "restarted"

    @property
    def is_unsafe(self) -> bool:
        """Service is down; an operator has to finish the relocation by hand."""
        return self in (
            RelocationState.STOPPED,
            RelocationState.MOVED,
            RelocationState.LINKED,
        )

    def describe(self) -> str:
        return _RELOCATION_STATE_TEXT[self]


_RELOCATION_STATE_TEXT = {
    RelocationState.RUNNING: "service running, data untouched",
    RelocationState.STOPPED: "service stopped, data not yet moved",
    RelocationState.MOVED: "service stopped, data moved, original path has no link",
    RelocationState.LINKED: "service stopped, data moved and linked, restart pending",
    RelocationState.RESTARTED: "service running from relocated data",
}


@dataclass(frozen=True)
class ServiceDataLink:
    """``original_path`` becomes a symlink to ``target_path`` after relocation."""

    service_name: str
    original_path: str
    target_path: str


# ==============================================================================
# Provisioning Run Domain
# ==============================================================================


class Stage(Enum):
    INSTALL_PACKAGES = "install_packages"
    CLASSIFY_DISKS = "classify_disks"
    CREATE_POOL = "create_pool"
    CARVE_VOLUME = "carve_volume"
    FORMAT_VOLUME = "format_volume"
    CREATE_MOUNT_DIR = "create_mount_dir"
    MOUNT_VOLUME = "mount_volume"
    PERSIST_MOUNT = "persist_mount"
    RELOCATE_SERVICE = "relocate_service"


@dataclass
class ProvisioningReport:
    completed_stages: list[Stage] = field(default_factory=list)
    classification: DiskClassification | None = None
    volume_size_bytes: int | None = None
    volume_device: str | None = None
    service_link: ServiceDataLink | None = None
