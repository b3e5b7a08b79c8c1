"""Standard exit codes for the animebell CLI."""


class ExitCode:
    """Standard exit codes for the animebell CLI.

    0 and 1 keep their usual meaning and 130 follows the 128+SIGINT
    convention. animebell-specific codes:

    - 2: Configuration error
    - 3: Daemon error (already running, not running)
    - 4: Delivery error
    - 5: Network error (metadata service)
    - 6: Storage error
    - 7: Invalid argument or malformed job data
    - 8: Not found
    - 9: Permission denied
    - 10: Rate limited
    """

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIGURATION_ERROR = 2
    DAEMON_ERROR = 3
    DELIVERY_ERROR = 4
    NETWORK_ERROR = 5
    STORAGE_ERROR = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8
    PERMISSION_DENIED = 9
    RATE_LIMITED = 10

    CANCELLED = 130  # Ctrl+C (SIGINT = 2)

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the name of an exit code."""
        for name, value in vars(cls).items():
            if name.isupper() and value == code:
                return name
        return f"UNKNOWN({code})"
