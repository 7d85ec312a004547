"""SDK-specific exceptions.

These are raised at setup time (bad connection string, bad settings) or
inside internal layers that catch them. Telemetry tracking and delivery
paths never let them reach application code - they log instead.
"""


class InsightsConfigurationError(Exception):
    """Raised when settings or the connection string cannot be resolved.

    Attributes:
        field: Name of the offending setting
        message: Human-readable error description
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"Invalid configuration for '{field}': {message}")


class ProvisioningError(Exception):
    """Raised when a retry directory cannot be restricted to the current user.

    Caught by DiskRetryStore, which then refuses to write.
    """

    def __init__(self, directory: str, message: str) -> None:
        self.directory = directory
        self.message = message
        super().__init__(f"Cannot provision retry directory '{directory}': {message}")
