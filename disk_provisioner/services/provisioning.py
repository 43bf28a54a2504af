"""The provisioning run as a fixed sequence of named stages.

    install_packages (optional)
    classify_disks
    create_pool
    carve_volume
    format_volume
    create_mount_dir
    mount_volume
    persist_mount
    relocate_service (optional)

Stages run strictly in order. The first failure aborts the run with
ProvisioningFailedError naming the stage, the stages already completed and
what was left behind on the host; the original error is kept as ``cause``.
Completed stages are never undone.
"""

from __future__ import annotations

from typing import Callable, Optional

from disk_provisioner.config.settings import ProvisionSettings
from disk_provisioner.domain.models import (
    ProvisioningReport,
    ServiceDataLink,
    Stage,
)
from disk_provisioner.logging import LoggerFactory, operation_context
from disk_provisioner.services.relocation import ServiceRelocator
from disk_provisioner.storage.classifier import DiskClassifier
from disk_provisioner.storage.commands import CommandRunner
from disk_provisioner.storage.exceptions import (
    ProvisionError,
    ProvisioningFailedError,
)
from disk_provisioner.storage.filesystem import (
    ensure_mount_dir,
    format_volume,
    mount_volume,
    wait_for_device,
)
from disk_provisioner.storage.fstab import MountTable, persist_mount
from disk_provisioner.storage.packages import install_packages
from disk_provisioner.storage.pool import install_pool
from disk_provisioner.storage.volume import carve_volume


log = LoggerFactory.for_system()

# What a failure in each stage leaves on the host
STATE_LEFT_ON_FAILURE = {
    Stage.INSTALL_PACKAGES: "no disks touched",
    Stage.CLASSIFY_DISKS: "no disks touched",
    Stage.CREATE_POOL: (
        "mount table entries of the data disks may have been removed; pool not created"
    ),
    Stage.CARVE_VOLUME: "pool '{pool}' created; volume not carved",
    Stage.FORMAT_VOLUME: "volume {device} carved; no filesystem on it",
    Stage.CREATE_MOUNT_DIR: "volume {device} formatted; mount directory missing",
    Stage.MOUNT_VOLUME: "volume {device} formatted; not mounted",
    Stage.PERSIST_MOUNT: (
        "volume {device} mounted at {mount_point}; no mount table entry for it"
    ),
    Stage.RELOCATE_SERVICE: "volume {device} mounted at {mount_point} and persisted; {service}",
}


class ProvisioningPipeline:
    def __init__(
        self,
        runner: CommandRunner,
        settings: ProvisionSettings,
        table: Optional[MountTable] = None,
        classifier: Optional[DiskClassifier] = None,
    ):
        self.runner = runner
        self.settings = settings
        self.table = table or MountTable(settings.fstab_path)
        self.classifier = classifier or DiskClassifier(runner, settings)
        self.relocator: Optional[ServiceRelocator] = None
        self.report = ProvisioningReport()

    def stages(self) -> list[Stage]:
        stages = []
        if self.settings.install_packages:
            stages.append(Stage.INSTALL_PACKAGES)
        stages.extend(
            [
                Stage.CLASSIFY_DISKS,
                Stage.CREATE_POOL,
                Stage.CARVE_VOLUME,
                Stage.FORMAT_VOLUME,
                Stage.CREATE_MOUNT_DIR,
                Stage.MOUNT_VOLUME,
                Stage.PERSIST_MOUNT,
            ]
        )
        if self.settings.relocate_service:
            stages.append(Stage.RELOCATE_SERVICE)
        return stages

    def _handler(self, stage: Stage) -> Callable[[], None]:
        return getattr(self, f"_{stage.value}")

    def state_left(self, failed: Stage) -> str:
        service = self.relocator.state.describe() if self.relocator else "service untouched"
        return STATE_LEFT_ON_FAILURE[failed].format(
            pool=self.settings.pool_name,
            device=self.settings.volume_device,
            mount_point=self.settings.mount_point,
            service=service,
        )

    def run(self) -> ProvisioningReport:
        for stage in self.stages():
            try:
                with operation_context(stage.value):
                    self._handler(stage)()
            except ProvisionError as error:
                state_left = self.state_left(stage)
                log.error(f"Stage {stage.value} failed: {error}")
                log.error(f"State left behind: {state_left}")
                raise ProvisioningFailedError(
                    stage.value,
                    [done.value for done in self.report.completed_stages],
                    state_left,
                    error,
                ) from error
            self.report.completed_stages.append(stage)
        log.success(
            f"Provisioned {self.settings.volume_device} at {self.settings.mount_point}"
        )
        return self.report

    # Stages

    def _install_packages(self) -> None:
        install_packages(self.runner, self.settings.packages)

    def _classify_disks(self) -> None:
        self.report.classification = self.classifier.classify()

    def _create_pool(self) -> None:
        classification = self.report.classification
        disks = classification.data_disks if classification else ()
        install_pool(
            self.runner,
            self.table,
            disks,
            self.settings.pool_name,
            self.settings.pool_layout,
        )

    def _carve_volume(self) -> None:
        self.report.volume_size_bytes = carve_volume(
            self.runner,
            self.settings.pool_name,
            self.settings.volume_name,
            self.settings.volume_percent,
            self.settings.volume_align_bytes,
        )
        self.report.volume_device = self.settings.volume_device

    def _format_volume(self) -> None:
        wait_for_device(self.runner, self.settings.volume_device)
        format_volume(self.runner, self.settings.volume_device, self.settings.filesystem)

    def _create_mount_dir(self) -> None:
        ensure_mount_dir(self.runner, self.settings.mount_point)

    def _mount_volume(self) -> None:
        mount_volume(
            self.runner,
            self.settings.volume_device,
            self.settings.mount_point,
            self.settings.filesystem,
            self.settings.mount_options,
        )

    def _persist_mount(self) -> None:
        self.table.purge(self.settings.volume_device)
        persist_mount(
            self.table,
            self.settings.volume_device,
            self.settings.mount_point,
            self.settings.filesystem,
            self.settings.mount_options,
        )

    def _relocate_service(self) -> None:
        link = ServiceDataLink(
            service_name=self.settings.service_name,
            original_path=self.settings.service_data_dir,
            target_path=self.settings.service_target_dir,
        )
        self.relocator = ServiceRelocator(self.runner, link)
        self.report.service_link = self.relocator.relocate()
