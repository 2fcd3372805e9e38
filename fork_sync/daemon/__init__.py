"""Daemon module for fork-sync.

This module runs the change detection cycle as a long-lived dispatcher
process with graceful shutdown.
"""

from fork_sync.daemon.service import (
    DispatcherDaemon,
    create_cycle,
    run_daemon,
)

__all__ = [
    "DispatcherDaemon",
    "create_cycle",
    "run_daemon",
]
