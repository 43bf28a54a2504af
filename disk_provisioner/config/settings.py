"""Settings for a provisioning run."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path, PurePosixPath
from typing import Any

from disk_provisioner.storage.exceptions import ConfigurationError


SETTINGS_PATH = Path(
    os.environ.get(
        "DISK_PROVISIONER_SETTINGS_PATH",
        "/etc/disk-provisioner/settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_POOL_NAME = "disk"
DEFAULT_VOLUME_NAME = "data"
DEFAULT_MOUNT_POINT = "/root/data"
DEFAULT_FILESYSTEM = "xfs"
DEFAULT_MOUNT_OPTIONS = "defaults,prjquota"
DEFAULT_VOLUME_PERCENT = 93
DEFAULT_DATA_DISK_PATTERNS = ("sd", "hd", "vd", "nvme")

POOL_LAYOUTS = ("auto", "stripe", "mirror", "raidz", "raidz2", "raidz3")
DISK_MATCH_MODES = ("substring", "name")
SYSTEM_DISK_DETECTORS = ("strict", "heuristic")


@dataclass
class ProvisionSettings:
    pool_name: str = DEFAULT_POOL_NAME
    volume_name: str = DEFAULT_VOLUME_NAME
    mount_point: str = DEFAULT_MOUNT_POINT
    filesystem: str = DEFAULT_FILESYSTEM
    mount_options: str = DEFAULT_MOUNT_OPTIONS
    volume_percent: int = DEFAULT_VOLUME_PERCENT
    volume_align_bytes: int = 0
    pool_layout: str = "auto"
    data_disk_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_DATA_DISK_PATTERNS)
    )
    disk_match_mode: str = "substring"
    system_disk_detector: str = "strict"
    fstab_path: str = "/etc/fstab"
    service_name: str = "docker"
    service_data_dir: str = "/var/lib/docker"
    relocate_service: bool = True
    install_packages: bool = False
    packages: list[str] = field(
        default_factory=lambda: ["zfsutils-linux", "xfsprogs"]
    )

    @property
    def volume_dataset(self) -> str:
        return f"{self.pool_name}/{self.volume_name}"

    @property
    def volume_device(self) -> str:
        return f"/dev/zvol/{self.volume_dataset}"

    @property
    def service_target_dir(self) -> str:
        name = PurePosixPath(self.service_data_dir).name
        return str(PurePosixPath(self.mount_point) / name)

    def validate(self) -> None:
        """Raise ConfigurationError on the first invalid value."""
        if not isinstance(self.volume_percent, int) or not 1 <= self.volume_percent <= 100:
            raise ConfigurationError(
                f"volume_percent must be an integer between 1 and 100, got {self.volume_percent!r}"
            )
        if not isinstance(self.volume_align_bytes, int) or self.volume_align_bytes < 0:
            raise ConfigurationError(
                f"volume_align_bytes must be a non-negative integer, got {self.volume_align_bytes!r}"
            )
        choices = {
            "pool_layout": POOL_LAYOUTS,
            "disk_match_mode": DISK_MATCH_MODES,
            "system_disk_detector": SYSTEM_DISK_DETECTORS,
        }
        for key, allowed in choices.items():
            value = getattr(self, key)
            if value not in allowed:
                raise ConfigurationError(
                    f"{key} must be one of {', '.join(allowed)}, got {value!r}"
                )
        for key in ("mount_point", "service_data_dir", "fstab_path"):
            if not str(getattr(self, key)).startswith("/"):
                raise ConfigurationError(f"{key} must be an absolute path")
        for key in ("pool_name", "volume_name", "filesystem", "mount_options"):
            if not getattr(self, key):
                raise ConfigurationError(f"{key} must not be empty")
        if not self.data_disk_patterns:
            raise ConfigurationError("data_disk_patterns must not be empty")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_settings(path: Path | None = None, **overrides: Any) -> ProvisionSettings:
    """Load settings from a JSON file merged over the defaults.

    A missing file yields the defaults; a file that exists but cannot be
    used is an error, since the run is destructive.
    """
    path = Path(path) if path is not None else SETTINGS_PATH
    values: dict[str, Any] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            raise ConfigurationError(f"Cannot read settings file {path}: {error}") from error
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must hold a JSON object")
        values.update(data)
    values.update({key: value for key, value in overrides.items() if value is not None})

    known = {f.name for f in fields(ProvisionSettings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    settings = ProvisionSettings(**values)
    settings.validate()
    return settings
