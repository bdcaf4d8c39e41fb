"""Shared test fixtures. FakeProcessRunner stands in for real processes."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import pytest

from yggd.config import YggSettings
from yggd.workers.process import ExitInfo, ProcessHandle, ProcessRunner


class FakeProcessRunner(ProcessRunner):
    """Process capability that never forks. Tests decide when processes exit."""

    def __init__(self) -> None:
        self.starts: list[dict] = []  # record every start for assertions
        self.signals: list[tuple[int, int]] = []
        self.start_error: Exception | None = None
        self.signal_error: OSError | None = None
        self.output: bytes = b""
        self._next_pid = 1000
        self._exits: dict[int, asyncio.Future] = {}

    async def start(self, program, args, env):
        if self.start_error is not None:
            raise self.start_error
        self._next_pid += 1
        pid = self._next_pid
        self.starts.append({"program": program, "args": args, "env": env, "pid": pid})

        stdout, stderr = asyncio.StreamReader(), asyncio.StreamReader()
        if self.output:
            stdout.feed_data(self.output)
        stdout.feed_eof()
        stderr.feed_eof()
        self._exits[pid] = asyncio.get_running_loop().create_future()
        return ProcessHandle(pid=pid, stdout=stdout, stderr=stderr)

    async def wait(self, handle):
        return await self._exits[handle.pid]

    def signal(self, pid, signum=15):
        self.signals.append((pid, signum))
        if self.signal_error is not None:
            raise self.signal_error
        self.exit(pid, returncode=-signum)

    def exit(self, pid: int, returncode: int = 0, system_time: float = 0.0) -> None:
        fut = self._exits.get(pid)
        if fut is not None and not fut.done():
            fut.set_result(ExitInfo(returncode=returncode, system_time=system_time))

    @property
    def last_pid(self) -> int:
        return self.starts[-1]["pid"]


@pytest.fixture
def tmp_root():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def settings(tmp_root):
    s = YggSettings(
        client_id="test-client",
        socket_addr="@yggd-test",
        sysconf_dir=tmp_root / "etc",
        localstate_dir=tmp_root / "var",
    )
    s.workers_dir.mkdir(parents=True)
    return s


@pytest.fixture
def fast_settings(tmp_root):
    """Settings with a backoff short enough to run through in a test."""
    s = YggSettings(
        client_id="test-client",
        socket_addr="@yggd-test",
        sysconf_dir=tmp_root / "etc",
        localstate_dir=tmp_root / "var",
        backoff_increment=0.01,
        backoff_ceiling=0.055,
    )
    s.workers_dir.mkdir(parents=True)
    return s


@pytest.fixture
def fake_runner():
    return FakeProcessRunner()


@pytest.fixture
def write_worker():
    def _write(directory: Path, name: str, exec_: str = "/bin/echo hi",
               protocol: str = "grpc", env: list[str] | None = None) -> Path:
        lines = [f'exec = "{exec_}"', f'protocol = "{protocol}"']
        if env is not None:
            items = ", ".join(f'"{e}"' for e in env)
            lines.append(f"env = [{items}]")
        path = directory / f"{name}.toml"
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def eventually():
    async def _eventually(predicate, timeout: float = 3.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)
    return _eventually
