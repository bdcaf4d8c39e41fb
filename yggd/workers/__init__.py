"""Worker supervision: OS-level management of protocol worker programs.

Workers are declared by TOML files dropped into the workers directory.
This package provides:
- load_worker_config: parse a declaration into a WorkerSpec
- build_environment: the environment each worker process receives
- PidStore: durable <directive>.pid records of running workers
- WorkerSupervisor: start, restart with backoff, stop
- WorkerDirWatcher: (de)register workers as their files come and go
"""

from yggd.workers.env import build_environment
from yggd.workers.pidfile import PidStore
from yggd.workers.spec import WorkerSpec, directive_for, load_worker_config
from yggd.workers.supervisor import WorkerExited, WorkerStarted, WorkerSupervisor
from yggd.workers.watcher import WorkerDirWatcher

__all__ = [
    "PidStore",
    "WorkerDirWatcher",
    "WorkerExited",
    "WorkerSpec",
    "WorkerStarted",
    "WorkerSupervisor",
    "build_environment",
    "directive_for",
    "load_worker_config",
]
