import argparse
from pathlib import Path

from disk_provisioner.__version__ import __version__
from disk_provisioner.config.settings import ProvisionSettings, load_settings
from disk_provisioner.domain.models import DiskClassification
from disk_provisioner.logging import LoggerFactory, setup_logging
from disk_provisioner.services.provisioning import ProvisioningPipeline
from disk_provisioner.storage.classifier import DiskClassifier
from disk_provisioner.storage.commands import CommandRunner
from disk_provisioner.storage.exceptions import (
    ProvisionError,
    ProvisioningFailedError,
)


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_CONFIRMED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="disk-provisioner",
        description="Build a ZFS data volume from the spare disks and move service data onto it",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log raw command output")
    parser.add_argument("-c", "--config", type=Path, help="Settings file (JSON)")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    parser.add_argument(
        "--list-disks",
        action="store_true",
        help="Show how the disks are classified and exit",
    )
    parser.add_argument(
        "--install-packages",
        action="store_true",
        default=None,
        help="Install the ZFS and filesystem tools before provisioning",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Confirm that the data disks may be wiped",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def format_classification(classification: DiskClassification) -> list[str]:
    lines = [
        f"System disks: {', '.join(map(str, classification.system_disks))}",
        f"Swap disk:    {classification.swap_disk}",
    ]
    for disk, role in classification.roles.items():
        lines.append(f"  {disk.path:<20} {role.value}")
    if not classification.all_disks:
        lines.append("  (no disks found)")
    excluded = ", ".join(map(str, classification.excluded_disks)) or "none"
    lines.append(f"Left untouched: {excluded}")
    return lines


def format_plan(settings: ProvisionSettings, classification: DiskClassification) -> list[str]:
    disks = ", ".join(map(str, classification.data_disks)) or "none"
    lines = [
        f"Pool {settings.pool_name} ({settings.pool_layout}) from: {disks}",
        f"Left untouched: {', '.join(map(str, classification.excluded_disks)) or 'none'}",
        f"Volume {settings.volume_dataset}: {settings.volume_percent}% of free space",
        f"Filesystem {settings.filesystem} mounted at {settings.mount_point} "
        f"({settings.mount_options})",
    ]
    if settings.relocate_service:
        lines.append(
            f"Service {settings.service_name}: {settings.service_data_dir} -> "
            f"{settings.service_target_dir}"
        )
    return lines


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()

    try:
        settings = load_settings(args.config, install_packages=args.install_packages)
        log.debug(f"Settings: {settings.to_dict()}")
        runner = CommandRunner()
        classifier = DiskClassifier(runner, settings)

        if args.list_disks:
            for line in format_classification(classifier.classify()):
                log.info(line)
            return EXIT_OK

        if not args.yes:
            for line in format_plan(settings, classifier.classify()):
                log.info(line)
            log.warning("All data on the listed disks will be destroyed; re-run with --yes")
            return EXIT_NOT_CONFIRMED

        report = ProvisioningPipeline(runner, settings, classifier=classifier).run()
    except ProvisioningFailedError as error:
        log.error(f"Provisioning aborted at {error.stage}: {error.cause}")
        if error.completed_stages:
            log.error(f"Completed stages: {', '.join(error.completed_stages)}")
        log.error(f"Left behind: {error.state_left}")
        return EXIT_FAILED
    except ProvisionError as error:
        log.error(str(error))
        return EXIT_FAILED

    log.info(
        f"Done: {report.volume_device} ({report.volume_size_bytes} bytes) "
        f"mounted at {settings.mount_point}"
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
