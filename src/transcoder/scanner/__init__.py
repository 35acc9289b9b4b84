"""File discovery for the ledger."""

from transcoder.scanner.collector import (
    DEFAULT_EXTENSIONS,
    DiscoveredFile,
    gather_files,
)

__all__ = ["DEFAULT_EXTENSIONS", "DiscoveredFile", "gather_files"]
