"""ZFS pool creation from the data disks.

Every data disk first loses its mount table entries, then all of them become
members of one force-created pool. Any mount table failure stops the run
before ``zpool create`` is issued, so a pool is never built from disks that
are still referenced at boot.
"""

from __future__ import annotations

from typing import Sequence

from disk_provisioner.domain.models import DiskIdentifier
from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, run_checked
from disk_provisioner.storage.exceptions import NotFoundError, PoolCreationError
from disk_provisioner.storage.fstab import MountTable


log = LoggerFactory.for_pool()


def vdev_type_for(layout: str, disk_count: int) -> str | None:
    """Map a pool layout setting to the zpool vdev keyword (None = plain stripe)."""
    if layout == "auto":
        if disk_count >= 3:
            return "raidz"
        if disk_count == 2:
            return "mirror"
        return None
    if layout == "stripe":
        return None
    return layout


def build_pool_args(
    pool: str, disks: Sequence[DiskIdentifier], layout: str = "auto"
) -> list[str]:
    args = ["create", "-f", pool]
    vdev_type = vdev_type_for(layout, len(disks))
    if vdev_type:
        args.append(vdev_type)
    args.extend(disk.path for disk in disks)
    return args


def install_pool(
    runner: CommandRunner,
    table: MountTable,
    disks: Sequence[DiskIdentifier],
    pool: str,
    layout: str = "auto",
) -> None:
    """Purge the disks from the mount table and create the pool from them.

    Raises:
        NotFoundError: No data disks were given
        MountTableError: A disk's mount table entries could not be removed
        PoolCreationError: zpool create failed (carries zpool's stderr)
    """
    if not disks:
        raise NotFoundError("data disks", "nothing to build the pool from")

    for disk in disks:
        table.purge(disk.path)

    args = build_pool_args(pool, disks, layout)
    log.info(f"Creating pool {pool} from {', '.join(map(str, disks))}")
    run_checked(runner, "zpool", args, error_cls=PoolCreationError)
    log.info(f"Pool {pool} created")
