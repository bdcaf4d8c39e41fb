"""Custom exception hierarchy for yggd."""


class YggError(Exception):
    """Base for all yggd errors."""


class WorkerConfigReadError(YggError):
    """A worker config file could not be read."""


class WorkerConfigParseError(YggError):
    """A worker config file is not valid TOML or lacks required fields."""


class UnsupportedProtocolError(YggError):
    """The worker asks for a transport binding the daemon does not offer."""


class WorkerStartError(YggError):
    """The OS refused to create the worker process."""


class WorkerNotFoundError(YggError):
    """No PID record exists for the directive."""


class InvalidPidFileError(YggError):
    """A PID record does not contain a process id."""


class WorkerSignalError(YggError):
    """The termination signal could not be delivered."""


class ExhaustedRetriesError(YggError):
    """A worker crashed too often and will not be restarted."""


class WatchError(YggError):
    """The worker config directory could not be watched."""
