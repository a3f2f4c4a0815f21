"""chrca - ClickHouse Root Cause Analysis evidence engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chrca")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
