"""Internal default values for runtime configuration.

INTERNAL_DEFAULTS holds values hardcoded in runtime code and deliberately
NOT exposed in Settings. They are listed here so the values used at
runtime are visible in one place.
"""

from typing import Final

INTERNAL_DEFAULTS: Final[dict[str, dict[str, int | float | bool | str]]] = {
    "retry": {
        # Randomness added to transport backoff, seconds
        "jitter": 0.5,
    },
    "sender": {
        # Batches waiting for the sender worker thread; overflow goes to disk
        "queue_size": 100,
        # Seconds close() waits for the worker thread to drain
        "close_timeout": 5.0,
    },
    "disk": {
        "tempdir_prefix": "appInsights-python",
        "file_suffix": ".ai.json",
    },
    "access_control": {
        # Seconds allowed for powershell/icacls; crash path must not hang
        "process_timeout": 10.0,
    },
    "buffer": {
        # Aggregate warning every N dropped envelopes
        "drop_log_interval": 100,
    },
}
