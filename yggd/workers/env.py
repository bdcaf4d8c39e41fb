"""Worker process environment.

Workers get a fixed baseline, the daemon's proxy settings, the address of
the transport socket for their protocol, then their own declared variables.
The daemon's namespace (YGG_*) and PATH cannot be overridden by a worker file.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Mapping

from yggd.config import YggSettings
from yggd.exceptions import UnsupportedProtocolError
from yggd.workers.spec import WorkerSpec

_logger = logging.getLogger(__name__)

_RESERVED = [re.compile(p) for p in (r"PATH=.*", r"YGG_.*=.*")]

_PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY")


def is_allowed_env_var(entry: str) -> bool:
    """True unless ``entry`` touches PATH or the YGG_ namespace."""
    return not any(p.search(entry) for p in _RESERVED)


def proxy_environment(environ: Mapping[str, str] | None = None) -> list[str]:
    """Proxy variables from ``environ``; the upper-case spelling wins."""
    environ = os.environ if environ is None else environ
    entries = []
    for name in _PROXY_VARS:
        value = environ.get(name) or environ.get(name.lower()) or ""
        if value:
            entries.append(f"{name}={value}")
    return entries


def protocol_environment(protocol: str, settings: YggSettings) -> list[str]:
    if protocol == "grpc":
        return [f"YGG_SOCKET_ADDR=unix:{settings.socket_addr}"]
    raise UnsupportedProtocolError(f"unsupported protocol: {protocol}")


def build_environment(
    spec: WorkerSpec,
    settings: YggSettings,
    log_level: str,
    environ: Mapping[str, str] | None = None,
) -> list[str]:
    """Ordered ``KEY=VALUE`` list for the worker process."""
    env = [
        f"PATH={settings.worker_path}",
        f"YGG_CONFIG_DIR={settings.config_dir}",
        f"YGG_LOG_LEVEL={log_level}",
        f"YGG_CLIENT_ID={settings.client_id}",
    ]
    env.extend(proxy_environment(environ))
    env.extend(protocol_environment(spec.protocol, settings))

    for entry in spec.env:
        if "=" not in entry:
            _logger.warning("Worker %s: ignoring malformed env entry %r", spec.directive, entry)
            continue
        if not is_allowed_env_var(entry):
            _logger.warning("Worker %s: dropping reserved env entry %r", spec.directive, entry)
            continue
        env.append(entry)
    return env


def environment_dict(entries: list[str]) -> dict[str, str]:
    """Collapse ``KEY=VALUE`` entries; a later key replaces an earlier one."""
    result: dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        result[key] = value
    return result
