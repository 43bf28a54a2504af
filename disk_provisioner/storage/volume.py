"""Carving a thin block volume (zvol) out of the pool."""

from __future__ import annotations

from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, failure_message, run_checked
from disk_provisioner.storage.exceptions import CarveError, QueryError


log = LoggerFactory.for_pool()


def get_pool_free_space(runner: CommandRunner, pool: str) -> int:
    """Bytes available for new datasets in ``pool``."""
    result = runner.run("zfs", ["get", "-Hp", "-o", "value", "available", pool])
    if not result.success:
        raise QueryError(pool, failure_message(result) or f"exit status {result.returncode}")
    value = result.stdout_text().strip()
    if not (value.isascii() and value.isdigit()):
        raise QueryError(pool, f"available space is not an unsigned integer: {value!r}")
    free_bytes = int(value)
    log.debug(f"Pool {pool} has {free_bytes} bytes available")
    return free_bytes


def volume_size_for(free_bytes: int, percent: int, align_bytes: int = 0) -> int:
    """``floor(free_bytes * percent / 100)``, rounded down to ``align_bytes`` if set."""
    size = free_bytes * percent // 100
    if align_bytes:
        size -= size % align_bytes
    return size


def carve_volume(
    runner: CommandRunner,
    pool: str,
    volume: str,
    percent: int,
    align_bytes: int = 0,
) -> int:
    """Create a sparse zvol sized from the pool's free space; returns its size."""
    free_bytes = get_pool_free_space(runner, pool)
    size = volume_size_for(free_bytes, percent, align_bytes)
    dataset = f"{pool}/{volume}"
    if size <= 0:
        raise CarveError(
            f"zfs create {dataset}",
            f"pool {pool} has no room for a volume ({free_bytes} bytes available)",
        )
    log.info(f"Carving {dataset}: {size} bytes ({percent}% of {free_bytes})")
    run_checked(
        runner,
        "zfs",
        ["create", "-s", "-V", str(size), dataset],
        error_cls=CarveError,
    )
    return size
