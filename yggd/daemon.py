"""Wires the supervisor and the directory watcher into one daemon.

On start it clears workers left over from a previous run, starts watching
the workers directory, then starts every worker already declared there.
On stop it stops every recorded worker.
"""

from __future__ import annotations

import asyncio
import signal

import structlog

from yggd.config import YggSettings
from yggd.workers.process import ProcessRunner
from yggd.workers.supervisor import WorkerExited, WorkerSupervisor
from yggd.workers.watcher import WorkerDirWatcher

logger = structlog.get_logger()


class WorkerDaemon:
    """Supervises every worker declared in ``settings.workers_dir``."""

    def __init__(self, settings: YggSettings, runner: ProcessRunner | None = None) -> None:
        self._settings = settings
        self.supervisor = WorkerSupervisor(settings, runner=runner)
        self.died: asyncio.Queue[WorkerExited] = asyncio.Queue()
        self.watcher = WorkerDirWatcher(settings, self.supervisor, died=self.died)
        self._observer: asyncio.Task | None = None
        self._deaths: list[WorkerExited] = []
        self._deaths_limit = 100
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        failures = self.supervisor.stop_all()
        if failures:
            logger.warning("stale workers not stopped", directives=sorted(failures))

        self._settings.workers_dir.mkdir(parents=True, exist_ok=True)
        await self.watcher.start()
        self._observer = asyncio.create_task(self._observe_deaths())

        suffix = self._settings.worker_suffix
        for path in sorted(self._settings.workers_dir.glob(f"*{suffix}")):
            if path.is_file():
                self.watcher.install(path)
        logger.info("worker daemon started", workers_dir=str(self._settings.workers_dir))

    async def stop(self) -> None:
        await self.watcher.stop()
        failures = self.supervisor.stop_all()
        await self.supervisor.shutdown()
        if self._observer and not self._observer.done():
            self._observer.cancel()
            try:
                await self._observer
            except asyncio.CancelledError:
                pass
        logger.info("worker daemon stopped", failures=sorted(failures))

    @property
    def deaths(self) -> list[WorkerExited]:
        """Most recent worker exits, oldest first."""
        return list(self._deaths)

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Run until SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.request_stop)
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(signum)

    async def _observe_deaths(self) -> None:
        while True:
            exited = await self.died.get()
            self._deaths.append(exited)
            if len(self._deaths) > self._deaths_limit:
                self._deaths = self._deaths[-self._deaths_limit:]
            logger.info(
                "worker died",
                directive=exited.directive,
                pid=exited.pid,
                returncode=exited.returncode,
            )
