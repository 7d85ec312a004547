"""Runtime configuration contracts.

Settings (Pydantic, user-facing) live in appinsights.core.config; the
frozen runtime views live here so components do not depend on core.
"""

from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS
from appinsights.contracts.config.runtime import RuntimeRetryConfig, RuntimeSenderConfig

__all__ = [
    "INTERNAL_DEFAULTS",
    "RuntimeRetryConfig",
    "RuntimeSenderConfig",
]
