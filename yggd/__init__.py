"""yggd, the worker supervisor of the host-management agent."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("yggd")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
