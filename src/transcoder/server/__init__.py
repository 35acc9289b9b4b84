"""Daemon mode: HTTP health and ledger views plus the stale-claim reaper."""

from transcoder.server.app import HealthStatus, create_app

__all__ = ["HealthStatus", "create_app"]
