"""
Pytest configuration and shared fixtures for disk-provisioner tests.

No test runs a real command: storage code talks to a scripted
FakeCommandRunner that records every invocation.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from loguru import logger

from disk_provisioner.config.settings import ProvisionSettings
from disk_provisioner.storage.commands import CommandResult, CommandRunner


# ==============================================================================
# Command Runner Fake
# ==============================================================================


class FakeCommandRunner(CommandRunner):
    """Returns canned results keyed by (program, args); unknown commands succeed."""

    def __init__(self):
        super().__init__()
        self.responses: Dict[Tuple[str, Optional[Tuple[str, ...]]], CommandResult] = {}
        self.calls: List[List[str]] = []

    def respond(self, program, args=None, *, stdout="", stderr="", returncode=0):
        key_args = tuple(args) if args is not None else None
        if isinstance(stdout, str):
            stdout = stdout.encode("utf-8")
        if isinstance(stderr, str):
            stderr = stderr.encode("utf-8")
        self.responses[(program, key_args)] = CommandResult(
            program=program,
            args=key_args or (),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def fail(self, program, args=None, stderr="boom", returncode=1):
        self.respond(program, args, stderr=stderr, returncode=returncode)

    def run(self, program, args=()):
        args = tuple(str(arg) for arg in args)
        self.calls.append([program, *args])
        canned = self.responses.get((program, args)) or self.responses.get((program, None))
        if canned is None:
            result = CommandResult(program=program, args=args)
        else:
            result = CommandResult(
                program=program,
                args=args,
                returncode=canned.returncode,
                stdout=canned.stdout,
                stderr=canned.stderr,
            )
        return result

    def programs(self) -> List[str]:
        return [call[0] for call in self.calls]

    def called(self, *command) -> bool:
        return list(command) in self.calls


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


# ==============================================================================
# lsblk Output Fixtures
# ==============================================================================


DISK_LISTING = """/dev/sda disk
/dev/sdb disk
/dev/sdc disk
/dev/sr0 rom
"""


def _device(name, type_, mountpoint=None, fstype=None, children=None):
    device = {"name": name, "type": type_, "mountpoint": mountpoint, "fstype": fstype}
    if children:
        device["children"] = children
    return device


def _system_disk():
    return _device(
        "sda",
        "disk",
        children=[
            _device("sda1", "part", "/boot/efi", "vfat"),
            _device("sda2", "part", "/", "ext4"),
        ],
    )


DEVICE_TREE = json.dumps(
    {
        "blockdevices": [
            _system_disk(),
            _device("sdb", "disk"),
            _device("sdc", "disk"),
            _device("sr0", "rom"),
        ]
    },
    indent=3,
)

DEVICE_TREE_SWAP_ON_SDB = json.dumps(
    {
        "blockdevices": [
            _system_disk(),
            _device("sdb", "disk", children=[_device("sdb1", "part", "[SWAP]", "swap")]),
            _device("sdc", "disk"),
        ]
    },
    indent=3,
)


@pytest.fixture
def lsblk_host(fake_runner) -> FakeCommandRunner:
    """Fake runner answering lsblk for a host with sda (root), sdb and sdc."""
    fake_runner.respond("lsblk", ["-dpno", "NAME,TYPE"], stdout=DISK_LISTING)
    fake_runner.respond(
        "lsblk", ["-J", "-o", "NAME,TYPE,MOUNTPOINT,FSTYPE"], stdout=DEVICE_TREE
    )
    return fake_runner


# ==============================================================================
# File System Fixtures
# ==============================================================================


@pytest.fixture
def fstab_path(tmp_path) -> Path:
    path = tmp_path / "etc" / "fstab"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "# /etc/fstab: static file system information.\n"
        "UUID=0f3c6a0e-1111-2222-3333-444455556666 / ext4 errors=remount-ro 0 1\n"
        "/dev/sdb1 /mnt/old ext4 defaults 0 2\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(fstab_path) -> ProvisionSettings:
    return ProvisionSettings(fstab_path=str(fstab_path))


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def lsblk_outputs() -> Dict[str, str]:
    return {
        "disks": DISK_LISTING,
        "tree": DEVICE_TREE,
        "tree_swap": DEVICE_TREE_SWAP_ON_SDB,
    }
