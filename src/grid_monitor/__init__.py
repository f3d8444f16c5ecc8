"""Grid Monitor: grid availability and outage tracking for a single address."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("grid-monitor")
except PackageNotFoundError:
    __version__ = "dev"
