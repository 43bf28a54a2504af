"""Tests for disk_provisioner.services.provisioning.

Runs the whole pipeline against the scripted lsblk host from conftest:
sda carries the root filesystem, sdb and sdc are spare.
"""

import pytest

from disk_provisioner.config.settings import ProvisionSettings
from disk_provisioner.domain.models import Stage
from disk_provisioner.services.provisioning import ProvisioningPipeline
from disk_provisioner.storage.exceptions import (
    CommandError,
    NotFoundError,
    PoolCreationError,
    ProvisioningFailedError,
)
from disk_provisioner.storage.fstab import MountTable


FREE_SPACE_ARGS = ["get", "-Hp", "-o", "value", "available", "disk"]
VOLUME = "/dev/zvol/disk/data"


@pytest.fixture
def host(lsblk_host, mocker):
    """lsblk host with a pool reporting 1,000,000 free bytes and an instant device node."""
    lsblk_host.respond("zfs", FREE_SPACE_ARGS, stdout="1000000\n")
    mocker.patch("disk_provisioner.storage.filesystem.shutil.which", return_value=None)
    mocker.patch("disk_provisioner.storage.filesystem.os.path.exists", return_value=True)
    return lsblk_host


class TestStages:
    def test_default_stages(self, host, settings):
        stages = ProvisioningPipeline(host, settings).stages()
        assert stages[0] is Stage.CLASSIFY_DISKS
        assert stages[-1] is Stage.RELOCATE_SERVICE
        assert Stage.INSTALL_PACKAGES not in stages

    def test_optional_stages(self, host, fstab_path):
        settings = ProvisionSettings(
            fstab_path=str(fstab_path), install_packages=True, relocate_service=False
        )
        stages = ProvisioningPipeline(host, settings).stages()
        assert stages[0] is Stage.INSTALL_PACKAGES
        assert stages[-1] is Stage.PERSIST_MOUNT


class TestRun:
    def test_end_to_end(self, host, settings, fstab_path):
        report = ProvisioningPipeline(host, settings).run()

        assert host.calls[2:] == [
            ["zpool", "create", "-f", "disk", "mirror", "/dev/sdb", "/dev/sdc"],
            ["zfs", *FREE_SPACE_ARGS],
            ["zfs", "create", "-s", "-V", "930000", "disk/data"],
            ["mkfs.xfs", "-f", VOLUME],
            ["mkdir", "-p", "/root/data"],
            ["mount", "-t", "xfs", "-o", "defaults,prjquota", VOLUME, "/root/data"],
            ["systemctl", "stop", "docker"],
            ["mv", "/var/lib/docker", "/root/data/docker"],
            ["ln", "-s", "/root/data/docker", "/var/lib/docker"],
            ["systemctl", "start", "docker"],
        ]
        assert [call[0] for call in host.calls[:2]] == ["lsblk"] * 2

        assert [d.path for d in report.classification.data_disks] == ["/dev/sdb", "/dev/sdc"]
        assert report.volume_size_bytes == 930_000
        assert report.volume_device == VOLUME
        assert report.service_link.target_path == "/root/data/docker"
        assert report.completed_stages == ProvisioningPipeline(host, settings).stages()

        entries = [e for e in MountTable(fstab_path).entries() if e.device == VOLUME]
        assert len(entries) == 1
        assert entries[0].mountpoint == "/root/data"
        assert entries[0].fstype == "xfs"
        assert entries[0].options == "defaults,prjquota"
        assert "/dev/sdb1" not in fstab_path.read_text()

    def test_rerun_does_not_duplicate_volume_entry(self, host, settings, fstab_path):
        ProvisioningPipeline(host, settings).run()
        ProvisioningPipeline(host, settings).run()

        entries = [e for e in MountTable(fstab_path).entries() if e.device == VOLUME]
        assert len(entries) == 1

    def test_install_packages_runs_first(self, host, fstab_path):
        settings = ProvisionSettings(fstab_path=str(fstab_path), install_packages=True)
        ProvisioningPipeline(host, settings).run()
        assert host.calls[0] == ["apt-get", "install", "-y", "zfsutils-linux", "xfsprogs"]

    def test_without_relocation(self, host, fstab_path):
        settings = ProvisionSettings(fstab_path=str(fstab_path), relocate_service=False)
        report = ProvisioningPipeline(host, settings).run()
        assert "systemctl" not in host.programs()
        assert report.service_link is None


class TestFailures:
    def test_pool_failure_stops_run(self, host, settings):
        host.fail("zpool", stderr="cannot create 'disk': pool already exists")

        with pytest.raises(ProvisioningFailedError) as exc_info:
            ProvisioningPipeline(host, settings).run()

        error = exc_info.value
        assert error.stage == "create_pool"
        assert error.completed_stages == ["classify_disks"]
        assert isinstance(error.cause, PoolCreationError)
        assert error.__cause__ is error.cause
        assert "pool not created" in error.state_left
        assert "zfs" not in host.programs()

    def test_no_data_disks(self, host, settings):
        host.respond("lsblk", ["-dpno", "NAME,TYPE"], stdout="/dev/sda disk\n")

        with pytest.raises(ProvisioningFailedError) as exc_info:
            ProvisioningPipeline(host, settings).run()

        assert exc_info.value.stage == "create_pool"
        assert isinstance(exc_info.value.cause, NotFoundError)
        assert "zpool" not in host.programs()

    def test_mount_failure_reports_formatted_volume(self, host, settings, fstab_path):
        host.fail("mount", stderr="mount: wrong fs type")

        with pytest.raises(ProvisioningFailedError) as exc_info:
            ProvisioningPipeline(host, settings).run()

        error = exc_info.value
        assert error.stage == "mount_volume"
        assert error.state_left == f"volume {VOLUME} formatted; not mounted"
        assert VOLUME not in fstab_path.read_text()

    def test_relocation_failure_reports_service_state(self, host, settings):
        host.fail("mv", stderr="No space left on device")

        with pytest.raises(ProvisioningFailedError) as exc_info:
            ProvisioningPipeline(host, settings).run()

        error = exc_info.value
        assert error.stage == "relocate_service"
        assert "persist_mount" in error.completed_stages
        assert "service stopped, data not yet moved" in error.state_left
        assert isinstance(error.cause, CommandError)
        assert "systemctl" in host.programs()
        assert not host.called("systemctl", "start", "docker")
