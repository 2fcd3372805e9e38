"""CLI command modules for fork-sync."""

from fork_sync.cli.exit_codes import ExitCode
from fork_sync.cli.error_handler import exit_code_for, handle_errors

__all__ = [
    "ExitCode",
    "exit_code_for",
    "handle_errors",
]
