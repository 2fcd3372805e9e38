"""fork-sync init-db command - create the link and user tables."""

from fork_sync.cli.error_handler import handle_errors
from fork_sync.cli.output import console
from fork_sync.config import ensure_directories, get_config
from fork_sync.database.connection import create_tables, dispose_engine


@handle_errors
def init_db() -> None:
    """Create the database tables if they do not exist yet.

    Intended for development and tests; production databases are
    managed by the web application.
    """
    config = get_config()
    ensure_directories(config)
    try:
        create_tables(config)
    finally:
        dispose_engine()

    console.print("[green]✓[/green] Database tables created")
