"""skillgate: keep skill-package repositories on convention and gate merges on it."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("skillgate")
except PackageNotFoundError:
    __version__ = "dev"
