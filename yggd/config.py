"""Global configuration, loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_WORKER_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


class YggSettings(BaseSettings):
    client_id: str = ""
    socket_addr: str = "@yggd"  # abstract unix socket served by the transport
    sysconf_dir: Path = Path("/etc")
    localstate_dir: Path = Path("/var")
    long_name: str = "yggdrasil"
    log_level: str = "info"

    # Workers
    exclude_workers: frozenset[str] = frozenset()  # JSON list, e.g. '["echo"]'
    worker_path: str = DEFAULT_WORKER_PATH
    worker_suffix: str = ".toml"

    # Restart backoff (seconds)
    backoff_increment: float = 5.0
    backoff_ceiling: float = 30.0
    fast_exit_threshold: float = 1.0  # system CPU time below this counts as a crash

    model_config = {"env_prefix": "YGGD_", "frozen": True}

    @property
    def config_dir(self) -> Path:
        return self.sysconf_dir / self.long_name

    @property
    def workers_dir(self) -> Path:
        return self.config_dir / "workers"

    @property
    def pid_dir(self) -> Path:
        return self.localstate_dir / "run" / self.long_name / "workers"


settings = YggSettings()
