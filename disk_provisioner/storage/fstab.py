"""Persistent mount table (/etc/fstab) editing.

Entries are removed by deleting every entry line that contains a device
string, and added by appending one well-formed line. Every change is written
to a temporary file next to the table and renamed over it, so the table on
disk is always either the old or the new version. The table never holds
two entries for the same device: ``add()`` refuses a device that is already
present, so stale entries have to be purged first.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Optional

from disk_provisioner.domain.models import MountTableEntry
from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.exceptions import MountTableError


log = LoggerFactory.for_mount()

ETC_FSTAB = "/etc/fstab"
DEFAULT_FSTAB_MODE = 0o644


def _is_entry_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


class MountTable:
    def __init__(self, path: str | Path = ETC_FSTAB):
        self.path = Path(path)

    def _read_lines(self) -> list[str]:
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as error:
            raise MountTableError(str(self.path), f"cannot read: {error}") from error

    def _write_lines(self, lines: list[str]) -> None:
        """Replace the table atomically; on failure the old table is left as it was."""
        content = "\n".join(lines) + "\n" if lines else ""
        target = Path(os.path.realpath(self.path))
        tmp_name = None
        try:
            mode = target.stat().st_mode & 0o7777 if target.exists() else DEFAULT_FSTAB_MODE
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=target.parent,
                prefix=f".{target.name}.",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except OSError as error:
            if tmp_name is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
            raise MountTableError(str(self.path), f"cannot write: {error}") from error

    def entries(self) -> list[MountTableEntry]:
        entries = []
        for line in self._read_lines():
            entry = MountTableEntry.from_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    def find(self, device: str) -> Optional[MountTableEntry]:
        for entry in self.entries():
            if entry.device == device:
                return entry
        return None

    def purge(self, device: str) -> int:
        """Delete every entry line mentioning ``device``; returns how many went.

        A device with no entry (or a missing table) is not an error.
        """
        if not device:
            raise MountTableError(str(self.path), "refusing to purge an empty device string")
        lines = self._read_lines()
        kept = [line for line in lines if not (_is_entry_line(line) and device in line)]
        removed = len(lines) - len(kept)
        if removed:
            self._write_lines(kept)
            log.info(f"Removed {removed} mount table entr{'y' if removed == 1 else 'ies'} for {device}")
        else:
            log.debug(f"No mount table entry for {device}")
        return removed

    def add(self, entry: MountTableEntry) -> None:
        if self.find(entry.device) is not None:
            raise MountTableError(
                str(self.path), f"an entry for {entry.device} already exists"
            )
        lines = self._read_lines()
        lines.append(entry.to_line())
        self._write_lines(lines)
        log.info(f"Added mount table entry: {entry.to_line()}")


def persist_mount(
    table: MountTable,
    device: str,
    mountpoint: str,
    fstype: str,
    options: str,
) -> MountTableEntry:
    """Append a durable ``device mountpoint fstype options 0 0`` entry."""
    entry = MountTableEntry(device, mountpoint, fstype, options, 0, 0)
    table.add(entry)
    return entry
