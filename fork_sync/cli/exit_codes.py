"""Standard exit codes for fork-sync.

This module defines standard exit codes used across the fork-sync CLI
for consistent error reporting and scripting support.
"""


class ExitCode:
    """Standard exit codes for fork-sync.

    These codes follow common Unix conventions where possible:
    - 0: Success
    - 1: General error
    - 130: Script terminated by Ctrl+C (SIGINT)

    fork-sync specific codes:
    - 2: Configuration error
    - 3: Cycle finished with failed candidates
    - 4: Queue error
    - 5: Network error
    - 6: Status store error
    - 7: Invalid argument
    - 8: Not found
    """

    # Standard success
    SUCCESS = 0

    # General errors
    GENERAL_ERROR = 1

    # fork-sync specific errors (2-8)
    CONFIGURATION_ERROR = 2
    CYCLE_FAILED = 3
    QUEUE_ERROR = 4
    NETWORK_ERROR = 5
    STATUS_STORE_ERROR = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8

    # Signal-based exits (128 + signal number)
    CANCELLED = 130  # Ctrl+C (SIGINT = 2)

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the name of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable name for the exit code
        """
        names = {
            cls.SUCCESS: "SUCCESS",
            cls.GENERAL_ERROR: "GENERAL_ERROR",
            cls.CONFIGURATION_ERROR: "CONFIGURATION_ERROR",
            cls.CYCLE_FAILED: "CYCLE_FAILED",
            cls.QUEUE_ERROR: "QUEUE_ERROR",
            cls.NETWORK_ERROR: "NETWORK_ERROR",
            cls.STATUS_STORE_ERROR: "STATUS_STORE_ERROR",
            cls.INVALID_ARGUMENT: "INVALID_ARGUMENT",
            cls.NOT_FOUND: "NOT_FOUND",
            cls.CANCELLED: "CANCELLED",
        }
        return names.get(code, f"UNKNOWN({code})")

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get the description of an exit code."""
        descriptions = {
            cls.SUCCESS: "Operation completed successfully",
            cls.GENERAL_ERROR: "An unexpected error occurred",
            cls.CONFIGURATION_ERROR: "Configuration error or invalid config file",
            cls.CYCLE_FAILED: "Change detection cycle finished with errors",
            cls.QUEUE_ERROR: "Job queue operation failed",
            cls.NETWORK_ERROR: "Network or connectivity error",
            cls.STATUS_STORE_ERROR: "Status store operation failed",
            cls.INVALID_ARGUMENT: "Invalid command-line argument",
            cls.NOT_FOUND: "Requested resource not found",
            cls.CANCELLED: "Operation cancelled by user",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")
