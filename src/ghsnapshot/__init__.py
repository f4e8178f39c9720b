"""Versioned replication of GitHub repository and organization metadata."""

from .config import PageSizes, Settings, load_settings
from .downloader import (
    Downloader,
    TraversalStats,
    download_to_memory,
    new_downloader,
    new_memory_downloader,
    new_stdout_downloader,
)
from .pagination import ConnectionKind, PaginationError, collect, walk

__all__ = [
    "ConnectionKind",
    "Downloader",
    "PageSizes",
    "PaginationError",
    "Settings",
    "TraversalStats",
    "collect",
    "download_to_memory",
    "load_settings",
    "new_downloader",
    "new_memory_downloader",
    "new_stdout_downloader",
    "walk",
]

__version__ = "0.1.0"
