"""Leisure balance bookkeeping.

Productive time earns leisure at ``rate`` milliseconds per tracked
millisecond; unproductive time spends it at the same rate.
"""

from __future__ import annotations

import enum
import logging
import threading

from _constants import DEFAULT_LEISURE_RATE

__all__ = ["LeisureLedger", "Productivity"]

logger = logging.getLogger("relay.tracking")


class Productivity(enum.IntEnum):
    UNPRODUCTIVE = -1
    NEUTRAL = 0
    PRODUCTIVE = 1


class LeisureLedger:
    """Process-lifetime leisure balance (ms) and rate.

    Balance and rate have separate locks; the balance changes on every
    stop, the rate only from the admin surface.
    """

    def __init__(self, rate: float = DEFAULT_LEISURE_RATE, balance_ms: int = 0) -> None:
        self._balance_ms = balance_ms
        self._balance_lock = threading.Lock()
        self._rate = rate
        self._rate_lock = threading.Lock()

    # -- balance ------------------------------------------------------------

    @property
    def balance_ms(self) -> int:
        with self._balance_lock:
            return self._balance_ms

    def add(self, amount_ms: int) -> int:
        """Atomically add (or subtract, if negative); return the new balance."""
        with self._balance_lock:
            self._balance_ms += amount_ms
            return self._balance_ms

    def reset(self) -> None:
        with self._balance_lock:
            self._balance_ms = 0

    # -- rate ---------------------------------------------------------------

    @property
    def rate(self) -> float:
        with self._rate_lock:
            return self._rate

    def set_rate(self, rate: float) -> float:
        with self._rate_lock:
            self._rate = rate
            return self._rate

    # -- accounting ---------------------------------------------------------

    def record(self, elapsed_ms: int, productivity: Productivity) -> int:
        """Apply a finished session; return the signed change in ms.

        The change is ``elapsed_ms * rate`` truncated toward zero.
        """
        if productivity is Productivity.NEUTRAL:
            return 0
        change = int(elapsed_ms * self.rate) * int(productivity)
        balance = self.add(change)
        logger.info(
            "Leisure balance %+d ms (%s, %d ms tracked) -> %d ms",
            change,
            productivity.name.lower(),
            elapsed_ms,
            balance,
        )
        return change
