"""Transcoder - a shared-table work ledger for batch media transcoding."""

__version__ = "0.1.0"
