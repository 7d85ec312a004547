"""Background timers that never keep the interpreter alive.

Every timer the SDK starts goes through a TimerFactory so that tests can
substitute a manual clock. The default factory starts a daemon
``threading.Timer``: if the host process exits, pending flushes and
samples are abandoned instead of blocking shutdown. Callers that need the
data must flush explicitly before exit.
"""

import threading
from collections.abc import Callable
from typing import Protocol, TypeAlias


class Cancellable(Protocol):
    """Handle for a pending one-shot timer."""

    def cancel(self) -> None: ...


TimerFactory: TypeAlias = Callable[[float, Callable[[], None]], Cancellable]


def start_daemon_timer(delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
    """Run ``callback`` once after ``delay_seconds`` on a daemon thread.

    Args:
        delay_seconds: Delay before the callback fires. Negative values fire immediately.
        callback: Zero-argument callable. Exceptions are the callback's problem;
            the SDK's callbacks catch and log their own failures.

    Returns:
        The started timer; ``cancel()`` is idempotent.
    """
    timer = threading.Timer(max(delay_seconds, 0.0), callback)
    timer.daemon = True
    timer.name = f"appinsights-timer-{id(timer):x}"
    timer.start()
    return timer
