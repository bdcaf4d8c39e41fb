"""Tests for PID records."""

import pytest

from yggd.exceptions import InvalidPidFileError, WorkerNotFoundError
from yggd.workers.pidfile import PidStore


@pytest.fixture
def store(tmp_root):
    return PidStore(tmp_root / "run" / "workers")


def test_write_creates_directory(store):
    path = store.write("echo", 4242)
    assert path == store.directory / "echo.pid"
    assert path.read_text() == "4242"


def test_read_back(store):
    store.write("echo", 4242)
    assert store.read("echo") == 4242


def test_read_tolerates_whitespace(store):
    store.directory.mkdir(parents=True)
    store.path_for("echo").write_text("  77\n")
    assert store.read("echo") == 77


def test_read_missing(store):
    with pytest.raises(WorkerNotFoundError):
        store.read("nope")


def test_read_garbage(store):
    store.directory.mkdir(parents=True)
    store.path_for("echo").write_text("not-a-pid")
    with pytest.raises(InvalidPidFileError):
        store.read("echo")


def test_remove(store):
    store.write("echo", 1)
    store.remove("echo")
    assert not store.path_for("echo").exists()
    with pytest.raises(WorkerNotFoundError):
        store.remove("echo")


def test_write_replaces(store):
    store.write("echo", 1)
    store.write("echo", 2)
    assert store.read("echo") == 2
    assert store.directives() == ["echo"]


def test_discard_only_matching_pid(store):
    store.write("echo", 10)
    assert store.discard("echo", 11) is False
    assert store.read("echo") == 10
    assert store.discard("echo", 10) is True
    assert store.discard("echo", 10) is False


def test_directives(store):
    assert store.directives() == []
    store.write("b", 2)
    store.write("a", 1)
    (store.directory / "notes.txt").write_text("x")
    assert store.directives() == ["a", "b"]
