"""PID records, one ``<directive>.pid`` file per running worker.

A record exists from the moment a worker process starts until it is
explicitly stopped, so workers left behind by a previous daemon run can
still be found and stopped.
"""

from __future__ import annotations

import os
from pathlib import Path

from yggd.exceptions import InvalidPidFileError, WorkerNotFoundError

_SUFFIX = ".pid"


class PidStore:
    """Directory of PID records keyed by directive."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, directive: str) -> Path:
        return self._dir / f"{directive}{_SUFFIX}"

    def write(self, directive: str, pid: int) -> Path:
        """Record ``pid`` for ``directive``, replacing any previous record."""
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(directive)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        tmp.write_text(str(pid))
        os.replace(tmp, path)
        return path

    def read(self, directive: str) -> int:
        path = self.path_for(directive)
        try:
            data = path.read_text()
        except FileNotFoundError:
            raise WorkerNotFoundError(f"no pid record for worker {directive}") from None
        try:
            return int(data.strip())
        except ValueError:
            raise InvalidPidFileError(
                f"pid record {path} does not hold a process id: {data[:40]!r}"
            ) from None

    def remove(self, directive: str) -> None:
        try:
            self.path_for(directive).unlink()
        except FileNotFoundError:
            raise WorkerNotFoundError(f"no pid record for worker {directive}") from None

    def discard(self, directive: str, pid: int) -> bool:
        """Remove the record only if it still names ``pid``."""
        try:
            current = self.read(directive)
        except (WorkerNotFoundError, InvalidPidFileError):
            return False
        if current != pid:
            return False
        self.path_for(directive).unlink(missing_ok=True)
        return True

    def directives(self) -> list[str]:
        """Directives that currently have a record."""
        self._dir.mkdir(parents=True, exist_ok=True)
        return sorted(p.stem for p in self._dir.glob(f"*{_SUFFIX}") if p.is_file())
