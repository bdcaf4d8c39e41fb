"""WorkerSupervisor, the process table for protocol workers.

Each started worker gets one supervision task that waits for the process,
decides whether to restart it, and restarts it after a growing delay.

    idle -> starting -> running -> exited -> delaying -> restarting -> starting
                                          `-> terminated

A worker whose config file is gone when it exits is never restarted, so a
delete event that races with the process dying cannot resurrect it. A
worker that keeps dying quickly is given up on once the delay reaches the
ceiling.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from enum import Enum

from yggd.config import YggSettings
from yggd.exceptions import (
    ExhaustedRetriesError,
    WorkerNotFoundError,
    WorkerSignalError,
    YggError,
)
from yggd.log import TRACE, current_level_name
from yggd.workers.env import build_environment, environment_dict
from yggd.workers.pidfile import PidStore
from yggd.workers.process import OsProcessRunner, ProcessHandle, ProcessRunner
from yggd.workers.pump import start_pumps
from yggd.workers.spec import WorkerSpec

_logger = logging.getLogger(__name__)

TERMINAL_DELAY = -1.0


class WorkerState(str, Enum):
    IDLE = "idle"
    DELAYING = "delaying"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    RESTARTING = "restarting"
    TERMINATED = "terminated"


@dataclass
class SupervisionState:
    """Restart bookkeeping for one directive."""

    delay: float = 0.0  # seconds to wait before the next start; TERMINAL_DELAY = never
    pid: int | None = None
    running: bool = False
    state: WorkerState = WorkerState.IDLE
    restarts: int = 0


@dataclass(frozen=True)
class WorkerStarted:
    directive: str
    pid: int


@dataclass(frozen=True)
class WorkerExited:
    directive: str
    pid: int
    returncode: int
    system_time: float


def next_delay(
    delay: float,
    system_time: float,
    increment: float = 5.0,
    ceiling: float = 30.0,
    threshold: float = 1.0,
) -> float:
    """Backoff after an exit that used ``system_time`` seconds of CPU."""
    if delay < 0:
        return TERMINAL_DELAY
    if system_time < threshold:
        delay += increment
    if delay >= ceiling:
        return TERMINAL_DELAY
    return delay


@dataclass(eq=False)
class _Supervision:
    spec: WorkerSpec
    state: SupervisionState = field(default_factory=SupervisionState)
    started: asyncio.Queue | None = None
    stopped: asyncio.Queue | None = None
    handle: ProcessHandle | None = None
    task: asyncio.Task | None = None
    pumps: list[asyncio.Task] = field(default_factory=list)
    detached: bool = False  # explicitly stopped or superseded; never restart


class WorkerSupervisor:
    """Starts workers, restarts them with backoff, and stops them by PID record."""

    def __init__(
        self,
        settings: YggSettings,
        runner: ProcessRunner | None = None,
        pid_store: PidStore | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner or OsProcessRunner()
        self._pids = pid_store or PidStore(settings.pid_dir)
        self._supervisions: dict[str, _Supervision] = {}

    @property
    def pid_store(self) -> PidStore:
        return self._pids

    async def start(
        self,
        spec: WorkerSpec,
        started: asyncio.Queue | None = None,
        stopped: asyncio.Queue | None = None,
    ) -> int:
        """Start ``spec`` and supervise it. Returns the first pid.

        Errors building the environment or creating the process propagate;
        nothing is retried in that case.
        """
        previous = self._supervisions.get(spec.directive)
        if previous is not None and previous.state.state != WorkerState.TERMINATED:
            self._supersede(previous)

        sup = _Supervision(spec=spec, started=started, stopped=stopped)
        self._supervisions[spec.directive] = sup
        try:
            await self._launch(sup)
        except BaseException:
            sup.state.state = WorkerState.TERMINATED
            raise
        sup.task = asyncio.create_task(self._supervise(sup))
        return sup.state.pid

    def stop(self, directive: str) -> int:
        """Terminate the worker recorded for ``directive``. Returns its pid."""
        pid = self._pids.read(directive)
        sup = self._supervisions.get(directive)

        try:
            self._runner.signal(pid, signal.SIGTERM)
        except ProcessLookupError:
            _logger.debug("Worker %s (pid %d) already exited", directive, pid)
        except OSError as e:
            # still supervised: a later exit is restarted as usual
            raise WorkerSignalError(f"cannot stop worker {directive} (pid {pid}): {e}") from e

        if sup is not None:
            sup.detached = True

        self._pids.remove(directive)
        _logger.info("Stopped worker %s (pid %d)", directive, pid)
        return pid

    def stop_all(self) -> dict[str, YggError]:
        """Stop every recorded worker, carrying on past failures."""
        failures: dict[str, YggError] = {}
        for directive in self._pids.directives():
            try:
                self.stop(directive)
            except WorkerNotFoundError:
                continue  # removed by its own supervision meanwhile
            except YggError as e:
                _logger.error("Cannot stop worker %s: %s", directive, e)
                failures[directive] = e
        return failures

    def state_of(self, directive: str) -> SupervisionState | None:
        sup = self._supervisions.get(directive)
        return sup.state if sup else None

    def supervised(self) -> list[str]:
        """Directives whose supervision has not terminated."""
        return [
            d for d, sup in self._supervisions.items()
            if sup.state.state != WorkerState.TERMINATED
        ]

    async def shutdown(self) -> None:
        """Cancel supervision and pump tasks. Processes are left to stop_all()."""
        tasks = []
        for sup in self._supervisions.values():
            sup.detached = True
            for task in [sup.task, *sup.pumps]:
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _launch(self, sup: _Supervision) -> None:
        spec = sup.spec
        sup.state.state = WorkerState.STARTING
        env = build_environment(spec, self._settings, current_level_name())
        handle = await self._runner.start(spec.program, spec.argv[1:], environment_dict(env))

        sup.handle = handle
        sup.state.pid = handle.pid
        sup.state.running = True
        sup.state.state = WorkerState.RUNNING

        try:
            self._pids.write(spec.directive, handle.pid)
        except OSError as e:
            _logger.error("Cannot write pid record for worker %s: %s", spec.directive, e)

        sup.pumps = start_pumps(spec.program, handle)
        _notify(sup.started, WorkerStarted(spec.directive, handle.pid))
        _logger.info("Started worker %s (pid %d)", spec.directive, handle.pid)

    async def _supervise(self, sup: _Supervision) -> None:
        spec, state = sup.spec, sup.state
        while True:
            pid = sup.handle.pid
            try:
                exit_info = await self._runner.wait(sup.handle)
            except OSError as e:
                _logger.error("Cannot wait for worker %s (pid %d): %s", spec.directive, pid, e)
                self._terminate(sup, pid)
                return
            state.running = False
            state.state = WorkerState.EXITED
            _logger.info(
                "Worker %s stopped (pid %d, exit %d)", spec.directive, pid, exit_info.returncode,
            )

            state.delay = next_delay(
                state.delay,
                exit_info.system_time,
                increment=self._settings.backoff_increment,
                ceiling=self._settings.backoff_ceiling,
                threshold=self._settings.fast_exit_threshold,
            )
            _notify(
                sup.stopped,
                WorkerExited(spec.directive, pid, exit_info.returncode, exit_info.system_time),
            )

            if sup.detached:
                self._terminate(sup, pid)
                return
            if not spec.source.exists():
                _logger.info("Worker %s config removed, not restarting", spec.directive)
                self._terminate(sup, pid)
                return
            if state.delay < 0:
                err = ExhaustedRetriesError(
                    f"worker {spec.directive} failed to start too many times"
                )
                _logger.warning("Not restarting worker %s: %s", spec.directive, err)
                self._terminate(sup, pid)
                return

            if state.delay > 0:
                state.state = WorkerState.DELAYING
                _logger.log(TRACE, "Delaying worker %s start for %.1fs", spec.directive, state.delay)
                await asyncio.sleep(state.delay)
                if sup.detached:
                    self._terminate(sup, pid)
                    return

            state.state = WorkerState.RESTARTING
            state.restarts += 1
            try:
                await self._launch(sup)
            except (YggError, OSError) as e:
                _logger.error("Cannot restart worker %s: %s", spec.directive, e)
                self._terminate(sup, pid)
                return

    def _terminate(self, sup: _Supervision, pid: int) -> None:
        sup.state.running = False
        sup.state.state = WorkerState.TERMINATED
        self._pids.discard(sup.spec.directive, pid)

    def _supersede(self, sup: _Supervision) -> None:
        sup.detached = True
        pid = sup.state.pid
        if not sup.state.running or pid is None:
            return
        _logger.info("Replacing worker %s (pid %d)", sup.spec.directive, pid)
        try:
            self._runner.signal(pid, signal.SIGTERM)
        except OSError as e:
            _logger.warning("Cannot stop previous worker %s (pid %d): %s", sup.spec.directive, pid, e)


def _notify(queue: asyncio.Queue | None, item: object) -> None:
    if queue is None:
        return
    try:
        queue.put_nowait(item)
    except asyncio.QueueFull:
        _logger.warning("Dropped worker notification %s: queue full", item)
