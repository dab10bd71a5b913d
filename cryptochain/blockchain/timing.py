"""
Block timing helpers: the clock used for block timestamps and the
simulated mining delay between block creations.

Both are injectable so tests run with fixed timestamps and without real
waiting.
"""

import threading
import time
from typing import Callable, Optional

DEFAULT_MINING_DELAY = 1.0  # seconds between simulated block creations

Clock = Callable[[], int]


def system_clock_ms() -> int:
    """Current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


class MiningDelay:
    """
    Cooperative, cancellable wait between block creations.

    The wait has no side effect besides elapsed time. Once cancelled, every
    later wait returns False immediately.

    Example:
        >>> delay = MiningDelay(0.5)
        >>> delay.wait()       # sleeps up to 0.5s
        True
        >>> delay.cancel()
        >>> delay.wait()
        False
    """

    def __init__(self, seconds: float = DEFAULT_MINING_DELAY,
                 waiter: Optional[Callable[[float], None]] = None):
        """
        Args:
            seconds: Length of each wait
            waiter: Replaces the real wait (e.g. a no-op in tests); called
                with the delay in seconds
        """
        if seconds < 0:
            raise ValueError("Mining delay must be non-negative")
        self.seconds = seconds
        self._waiter = waiter
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Abort the current wait and all later ones."""
        self._cancelled.set()

    def wait(self) -> bool:
        """
        Wait for one mining interval.

        Returns:
            True if the interval elapsed, False if cancelled
        """
        if self._cancelled.is_set():
            return False
        if self._waiter is not None:
            self._waiter(self.seconds)
            return not self._cancelled.is_set()
        if self.seconds == 0:
            return True
        # Event.wait returns True when the event was set, i.e. cancelled
        return not self._cancelled.wait(self.seconds)
