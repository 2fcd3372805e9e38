"""Global exception handling for the fork-sync CLI.

Maps the domain exceptions in ``fork_sync.exceptions`` to exit codes and
prints them consistently on stderr.
"""

from functools import wraps
from typing import Any, Callable, Dict, Type, TypeVar
import logging

import typer
from rich.console import Console

from fork_sync.cli.exit_codes import ExitCode
from fork_sync.exceptions import (
    ConfigurationError,
    FetchError,
    ForkSyncError,
    QueueError,
    StatusStoreError,
)

# Console for error output (stderr)
console = Console(stderr=True)

# Logger for error logging
logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Most specific first; the first matching class wins
EXIT_CODES: Dict[Type[ForkSyncError], int] = {
    ConfigurationError: ExitCode.CONFIGURATION_ERROR,
    QueueError: ExitCode.QUEUE_ERROR,
    FetchError: ExitCode.NETWORK_ERROR,
    StatusStoreError: ExitCode.STATUS_STORE_ERROR,
}


def exit_code_for(error: ForkSyncError) -> int:
    """Get the exit code for a domain exception."""
    for error_type, code in EXIT_CODES.items():
        if isinstance(error, error_type):
            return code
    return ExitCode.GENERAL_ERROR


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    - ForkSyncError subclasses: error message with the mapped exit code
    - KeyboardInterrupt: cancellation message with exit code 130
    - Other exceptions: generic error with exit code 1

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigurationError("Invalid config")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ForkSyncError as e:
            exit_code = exit_code_for(e)
            logger.error(
                f"{type(e).__name__}: {e.message} "
                f"(exit {ExitCode.get_name(exit_code)}: {ExitCode.get_description(exit_code)})",
                extra={"exit_code": exit_code, "details": e.details},
            )

            console.print(f"[red]Error:[/red] {e.message}")

            if e.details:
                for key, value in e.details.items():
                    console.print(f"  [dim]{key}:[/dim] {value}")

            raise typer.Exit(code=exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")

            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")

            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
