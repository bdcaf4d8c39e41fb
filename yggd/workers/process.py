"""Start, wait for, and signal worker processes.

The supervisor only needs three operations from the OS. ProcessRunner
names them; OsProcessRunner implements them for Linux hosts.
"""

from __future__ import annotations

import asyncio
import os
import signal as _signal
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import IO, Any

from yggd.exceptions import WorkerStartError

CHUNK_SIZE = 4096


@dataclass
class ExitInfo:
    """How a worker process ended."""

    returncode: int
    system_time: float = 0.0  # seconds of kernel CPU time
    user_time: float = 0.0


@dataclass
class ProcessHandle:
    """A started worker process and its output streams."""

    pid: int
    stdout: asyncio.StreamReader
    stderr: asyncio.StreamReader
    extra: dict[str, Any] = field(default_factory=dict)


class ProcessRunner(ABC):
    @abstractmethod
    async def start(self, program: str, args: list[str], env: dict[str, str]) -> ProcessHandle: ...

    @abstractmethod
    async def wait(self, handle: ProcessHandle) -> ExitInfo: ...

    @abstractmethod
    def signal(self, pid: int, signum: int = _signal.SIGTERM) -> None: ...


class OsProcessRunner(ProcessRunner):
    """Linux binding: Popen, connect_read_pipe, and a pidfd-driven wait4."""

    async def start(self, program: str, args: list[str], env: dict[str, str]) -> ProcessHandle:
        try:
            popen = subprocess.Popen(
                [program, *args],
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            raise WorkerStartError(f"cannot start {program}: {e}") from e

        loop = asyncio.get_running_loop()
        stdout = await _connect_reader(loop, popen.stdout)
        stderr = await _connect_reader(loop, popen.stderr)
        return ProcessHandle(pid=popen.pid, stdout=stdout, stderr=stderr, extra={"popen": popen})

    async def wait(self, handle: ProcessHandle) -> ExitInfo:
        # The pidfd turns readable once the child exits; wait4 then reaps it
        # without blocking and reports its resource usage.
        pid = handle.pid
        loop = asyncio.get_running_loop()
        pidfd = os.pidfd_open(pid)
        try:
            while True:
                reaped, status, usage = os.wait4(pid, os.WNOHANG)
                if reaped:
                    break
                exited = loop.create_future()
                loop.add_reader(pidfd, _resolve, exited)
                try:
                    await exited
                finally:
                    loop.remove_reader(pidfd)
        finally:
            os.close(pidfd)

        returncode = os.waitstatus_to_exitcode(status)
        popen = handle.extra.get("popen")
        if popen is not None:
            popen.returncode = returncode
        return ExitInfo(
            returncode=returncode,
            system_time=usage.ru_stime,
            user_time=usage.ru_utime,
        )

    def signal(self, pid: int, signum: int = _signal.SIGTERM) -> None:
        os.kill(pid, signum)


async def _connect_reader(loop: asyncio.AbstractEventLoop, pipe: IO[bytes]) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=CHUNK_SIZE * 16)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), pipe)
    return reader


def _resolve(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)
