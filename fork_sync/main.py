"""Main CLI entry point for fork-sync."""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console

from fork_sync import __app_name__, __version__
from fork_sync.cli import db, queue, run, status
from fork_sync.cli.exit_codes import ExitCode
from fork_sync.config import (
    ForkSyncConfig,
    ValidationError,
    load_config,
    set_config,
    validate_config,
)
from fork_sync.exceptions import ConfigurationError

# Create the main Typer app
app = typer.Typer(
    name=__app_name__,
    help="fork-sync - Keep forks in sync by dispatching jobs when upstreams change.",
    add_completion=True,
    no_args_is_help=False,
    rich_markup_mode="rich",
)

# Console for CLI output
console = Console()
err_console = Console(stderr=True)

# Register commands
app.command("once")(run.once)
app.command("status")(status.status)
app.command("init-db")(db.init_db)
app.add_typer(queue.app, name="queue")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _setup_logging(
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
    default_level: str = "WARNING",
) -> None:
    """Set up logging configuration based on CLI options.

    Args:
        verbose: Enable INFO level logging
        debug: Enable DEBUG level logging
        quiet: Suppress non-error output
        log_file: Optional log file path
        default_level: Level used when no flag is given (from configuration)
    """
    # Determine log level
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    # Configure format
    if debug:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        handlers.append(file_handler)

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        handlers.append(console_handler)
    elif not log_file:
        # In quiet mode without log file, add null handler to prevent warnings
        handlers.append(logging.NullHandler())

    root_level = logging.DEBUG if log_file else level
    logging.basicConfig(
        level=root_level,
        format=format_str,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    # APScheduler logs every tick at INFO
    if not debug:
        logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}, debug={debug}")


def _load_config(config_file: Optional[Path]) -> Tuple[ForkSyncConfig, List[ValidationError]]:
    """Load and validate configuration, exiting on errors.

    Returns:
        The configuration and any validation warnings
    """
    try:
        config = load_config(config_file)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)

    problems = validate_config(config)
    for problem in problems:
        if problem.severity == "error":
            err_console.print(f"[red]Error:[/red] {problem.field}: {problem.message}")
    if any(problem.severity == "error" for problem in problems):
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)

    return config, problems


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging with full tracebacks).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """fork-sync - Poll upstream repositories and enqueue fork sync jobs.

    Without a command, runs the dispatcher until interrupted.

    [bold]Commands:[/bold]

    • [cyan]once[/cyan] - Run a single change detection cycle
    • [cyan]status[/cyan] - Show the recorded status for a webhook id
    • [cyan]queue[/cyan] - Inspect the job queue
    • [cyan]init-db[/cyan] - Create the database tables

    [bold]Examples:[/bold]

        fork-sync
        fork-sync once --json
        fork-sync status 3f2a9c...
        fork-sync queue size
    """
    # Validate mutually exclusive options
    if quiet and verbose:
        err_console.print("[red]Error:[/red] --quiet and --verbose are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    if quiet and debug:
        err_console.print("[red]Error:[/red] --quiet and --debug are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    config, warnings = _load_config(config_file)
    set_config(config)

    _setup_logging(
        verbose=verbose,
        debug=debug,
        quiet=quiet,
        log_file=log_file or (Path(config.logging.file) if config.logging.file else None),
        default_level=config.logging.level,
    )

    logger = logging.getLogger(__name__)
    logger.debug(f"fork-sync v{__version__} starting")
    for warning in warnings:
        logger.warning(str(warning))
    logger.debug(f"Options: verbose={verbose}, debug={debug}, quiet={quiet}")

    if ctx.invoked_subcommand is None:
        run.run_forever()


__all__ = ["app"]


if __name__ == "__main__":
    app()
