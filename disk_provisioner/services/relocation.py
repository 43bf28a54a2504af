"""Moving a service's data directory onto the provisioned volume.

States:
    RUNNING -> STOPPED -> MOVED -> LINKED -> RESTARTED

Each transition is one command and the first failure stops the sequence:

    stop fails     service still running, nothing else attempted
    move fails     service left stopped with its data in place (unsafe)
    link fails     data moved, original path has no link (unsafe)
    restart fails  link in place, service down (unsafe)

Nothing is retried or rolled back; ``state`` tells the caller what was left.
"""

from __future__ import annotations

from disk_provisioner.domain.models import RelocationState, ServiceDataLink
from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.commands import CommandRunner, run_checked


class ServiceRelocator:
    def __init__(self, runner: CommandRunner, link: ServiceDataLink):
        self.runner = runner
        self.link = link
        self.state = RelocationState.RUNNING
        self.log = LoggerFactory.for_service(link.service_name)

    def _stop(self) -> None:
        run_checked(self.runner, "systemctl", ["stop", self.link.service_name])
        self.state = RelocationState.STOPPED
        self.log.info(f"Stopped {self.link.service_name}")

    def _move(self) -> None:
        run_checked(self.runner, "mv", [self.link.original_path, self.link.target_path])
        self.state = RelocationState.MOVED
        self.log.info(f"Moved {self.link.original_path} to {self.link.target_path}")

    def _link(self) -> None:
        run_checked(self.runner, "ln", ["-s", self.link.target_path, self.link.original_path])
        self.state = RelocationState.LINKED
        self.log.info(f"Linked {self.link.original_path} -> {self.link.target_path}")

    def _restart(self) -> None:
        run_checked(self.runner, "systemctl", ["start", self.link.service_name])
        self.state = RelocationState.RESTARTED
        self.log.info(f"Started {self.link.service_name}")

    def relocate(self) -> ServiceDataLink:
        """Run stop, move, link and restart in order.

        Raises:
            CommandError: From the step that failed; ``self.state`` is the last
                state reached.
        """
        steps = {
            RelocationState.RUNNING: self._stop,
            RelocationState.STOPPED: self._move,
            RelocationState.MOVED: self._link,
            RelocationState.LINKED: self._restart,
        }
        while self.state is not RelocationState.RESTARTED:
            try:
                steps[self.state]()
            except Exception:
                if self.state.is_unsafe:
                    self.log.critical(
                        f"Relocation of {self.link.service_name} interrupted: "
                        f"{self.state.describe()}; manual intervention required"
                    )
                raise
        return self.link
