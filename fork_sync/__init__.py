"""fork-sync - polls upstream repositories and dispatches fork sync jobs."""

__app_name__ = "fork-sync"
__version__ = "0.1.0"
