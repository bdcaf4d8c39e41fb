"""Tests for the worker environment builder."""

import pytest

from yggd.exceptions import UnsupportedProtocolError
from yggd.workers.env import (
    build_environment,
    environment_dict,
    is_allowed_env_var,
    proxy_environment,
)
from yggd.workers.spec import WorkerSpec


def _spec(tmp_root, protocol="grpc", env=()):
    return WorkerSpec(
        exec="/bin/echo hi", protocol=protocol, env=list(env),
        directive="echo", source=tmp_root / "echo.toml",
    )


def test_baseline_order(settings, tmp_root):
    env = build_environment(_spec(tmp_root), settings, "info", environ={})
    assert env[:4] == [
        f"PATH={settings.worker_path}",
        f"YGG_CONFIG_DIR={settings.config_dir}",
        "YGG_LOG_LEVEL=info",
        "YGG_CLIENT_ID=test-client",
    ]
    assert env[4] == "YGG_SOCKET_ADDR=unix:@yggd-test"
    assert len(env) == 5


def test_proxies_copied_when_set(settings, tmp_root):
    environ = {"HTTP_PROXY": "http://proxy:3128", "https_proxy": "http://sproxy:3128", "NO_PROXY": ""}
    env = build_environment(_spec(tmp_root), settings, "info", environ=environ)
    assert "HTTP_PROXY=http://proxy:3128" in env
    assert "HTTPS_PROXY=http://sproxy:3128" in env
    assert not any(e.startswith("NO_PROXY=") for e in env)


def test_upper_case_proxy_wins():
    entries = proxy_environment({"NO_PROXY": "upper", "no_proxy": "lower"})
    assert entries == ["NO_PROXY=upper"]


def test_unsupported_protocol(settings, tmp_root):
    with pytest.raises(UnsupportedProtocolError):
        build_environment(_spec(tmp_root, protocol="mqtt"), settings, "info", environ={})


def test_user_entries_appended(settings, tmp_root):
    env = build_environment(_spec(tmp_root, env=["FOO=bar", "BAZ=1"]), settings, "info", environ={})
    assert env[-2:] == ["FOO=bar", "BAZ=1"]


def test_client_id_override_dropped(settings, tmp_root):
    env = build_environment(
        _spec(tmp_root, env=["YGG_CLIENT_ID=evil"]), settings, "info", environ={},
    )
    assert "YGG_CLIENT_ID=evil" not in env
    assert environment_dict(env)["YGG_CLIENT_ID"] == "test-client"


@pytest.mark.parametrize("entry", [
    "PATH=/tmp/evil",
    "LD_LIBRARY_PATH=/tmp",
    "YGG_SOCKET_ADDR=unix:/tmp/x",
    "YGG_=x",
])
def test_reserved_entries_rejected(entry):
    assert not is_allowed_env_var(entry)


@pytest.mark.parametrize("entry", ["FOO=bar", "YGGX=1", "PATHS", "HOME=/root"])
def test_ordinary_entries_allowed(entry):
    assert is_allowed_env_var(entry)


def test_no_reserved_user_entry_survives(settings, tmp_root):
    user = ["PATH=/evil", "YGG_LOG_LEVEL=trace", "YGG_CONFIG_DIR=/tmp", "KEEP=1"]
    env = build_environment(_spec(tmp_root, env=user), settings, "info", environ={})
    for entry in user[:-1]:
        assert entry not in env
    assert "KEEP=1" in env


def test_malformed_entry_dropped(settings, tmp_root):
    env = build_environment(_spec(tmp_root, env=["NOEQUALS"]), settings, "info", environ={})
    assert "NOEQUALS" not in env


def test_environment_dict_later_wins():
    assert environment_dict(["A=1", "B=x=y", "A=2"]) == {"A": "2", "B": "x=y"}
