"""Installs and removes workers as their files come and go.

Uses inotify on the workers directory, read from the event loop:
CLOSE_WRITE and MOVED_TO mean a worker was declared (or re-declared),
DELETE and MOVED_FROM mean it was withdrawn.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from inotify_simple import INotify, flags as inotify_flags

from yggd.config import YggSettings
from yggd.exceptions import WatchError, WorkerNotFoundError, YggError
from yggd.log import TRACE
from yggd.workers.spec import WorkerSpec, directive_for, load_worker_config
from yggd.workers.supervisor import WorkerSupervisor

_logger = logging.getLogger(__name__)

WATCH_FLAGS = (
    inotify_flags.CLOSE_WRITE
    | inotify_flags.DELETE
    | inotify_flags.MOVED_FROM
    | inotify_flags.MOVED_TO
)
_INSTALL = inotify_flags.CLOSE_WRITE | inotify_flags.MOVED_TO
_REMOVE = inotify_flags.DELETE | inotify_flags.MOVED_FROM


class WorkerDirWatcher:
    """Turns directory events into supervisor start/stop calls.

    Events are consumed one at a time, in the order inotify reports them.
    Starts run as their own tasks, so a slow start does not hold up the
    next event.
    """

    def __init__(
        self,
        settings: YggSettings,
        supervisor: WorkerSupervisor,
        died: asyncio.Queue | None = None,
        directory: str | Path | None = None,
    ) -> None:
        self._settings = settings
        self._supervisor = supervisor
        self._died = died
        self._dir = Path(directory) if directory is not None else settings.workers_dir
        self._inotify: INotify | None = None
        self._events: asyncio.Queue = asyncio.Queue()
        self._pending: set[asyncio.Task] = set()
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin watching. Raises WatchError if the watch cannot be set up."""
        inotify = None
        try:
            inotify = INotify()
            inotify.add_watch(str(self._dir), WATCH_FLAGS)
        except OSError as e:
            if inotify is not None:
                inotify.close()
            raise WatchError(f"cannot watch {self._dir}: {e}") from e

        self._inotify = inotify
        asyncio.get_running_loop().add_reader(inotify.fileno(), self._on_readable)
        self._running = True
        self._task = asyncio.create_task(self._watch_loop())
        _logger.info("Watching %s for workers", self._dir)

    async def stop(self) -> None:
        """Stop watching and wait for in-flight starts."""
        self._running = False
        if self._inotify is not None:
            asyncio.get_running_loop().remove_reader(self._inotify.fileno())
            self._inotify.close()
            self._inotify = None
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def install(self, path: str | Path) -> asyncio.Task | None:
        """Load the worker file at ``path`` and start it in the background."""
        try:
            spec = load_worker_config(path)
        except YggError as e:
            _logger.error("Cannot load worker config %s: %s", path, e)
            return None

        if spec.directive in self._settings.exclude_workers:
            _logger.log(TRACE, "Skipping excluded worker %s", spec.directive)
            return None

        _logger.debug("Starting worker %s", spec.directive)
        task = asyncio.create_task(self._start(spec))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def remove(self, path: str | Path) -> None:
        """Stop the worker declared by the (now gone) file at ``path``."""
        directive = directive_for(path)
        try:
            self._supervisor.stop(directive)
        except WorkerNotFoundError:
            _logger.debug("Worker %s was not running", directive)
        except YggError as e:
            _logger.error("Cannot stop worker %s: %s", directive, e)

    def handle_event(self, mask: int, name: str) -> None:
        """Dispatch one inotify event for ``name`` inside the watched directory."""
        if mask & inotify_flags.Q_OVERFLOW:
            _logger.warning("Worker directory events were lost (queue overflow)")
            return
        if mask & inotify_flags.IGNORED:
            _logger.error("Watch on %s was removed", self._dir)
            return
        if not name or not name.endswith(self._settings.worker_suffix):
            return

        path = self._dir / name
        if mask & _INSTALL:
            _logger.log(TRACE, "New worker detected: %s", path)
            self.install(path)
        elif mask & _REMOVE:
            _logger.log(TRACE, "Worker removed: %s", path)
            self.remove(path)

    def _on_readable(self) -> None:
        if self._inotify is None:
            return
        for event in self._inotify.read(timeout=0):
            self._events.put_nowait(event)

    async def _watch_loop(self) -> None:
        while self._running:
            event = await self._events.get()
            name = os.fsdecode(event.name) if event.name else ""
            _logger.debug(
                "Received inotify event %s on %r",
                [str(f) for f in inotify_flags.from_mask(event.mask)], name,
            )
            try:
                self.handle_event(event.mask, name)
            except Exception as e:
                _logger.error("Cannot handle event on %r: %s", name, e)

    async def _start(self, spec: WorkerSpec) -> None:
        try:
            await self._supervisor.start(spec, stopped=self._died)
        except YggError as e:
            _logger.error("Cannot start worker %s: %s", spec.directive, e)
