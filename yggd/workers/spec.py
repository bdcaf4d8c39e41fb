"""Worker declarations: one TOML file per worker.

    exec = "/usr/libexec/yggdrasil/echo-worker --verbose"
    protocol = "grpc"
    env = ["ECHO_PREFIX=hi"]

The directive (the worker's name) is the file stem, never a value from the
file, so filesystem events can be matched to workers without reading them.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from yggd.exceptions import WorkerConfigParseError, WorkerConfigReadError


class WorkerSpec(BaseModel):
    """An immutable, loaded worker declaration."""

    model_config = ConfigDict(frozen=True)

    exec: str
    protocol: str
    env: tuple[str, ...] = ()
    directive: str
    source: Path

    @field_validator("exec")
    @classmethod
    def _exec_not_blank(cls, value: str) -> str:
        if not value.split():
            raise ValueError("exec must name a program")
        return value

    @property
    def argv(self) -> list[str]:
        return self.exec.split()

    @property
    def program(self) -> str:
        return self.argv[0]


def directive_for(path: str | Path) -> str:
    return Path(path).stem


def load_worker_config(path: str | Path) -> WorkerSpec:
    """Read and validate the worker declaration at ``path``."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise WorkerConfigReadError(f"cannot read file {path}: {e}") from e

    try:
        raw = tomllib.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise WorkerConfigParseError(f"cannot load config {path}: {e}") from e

    fields = {k: raw[k] for k in ("exec", "protocol", "env") if k in raw}
    try:
        return WorkerSpec(**fields, directive=directive_for(path), source=path)
    except ValidationError as e:
        raise WorkerConfigParseError(f"cannot load config {path}: {e}") from e
