"""
Shared-cooldown debouncer for swipe navigation.

One timestamp guards every direction: after an accepted event, any other
event (same or opposite direction) is rejected until the cooldown has
elapsed. Only accepted events restart the cooldown.
"""

import time
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Fire-at-most-once-per-cooldown gate."""

    def __init__(self, config: dict = None):
        config = config or {}
        self._cooldown_ms = config.get("cooldown_ms", 600)
        self._last_accepted_ms: Optional[float] = None

    @staticmethod
    def _now_ms() -> float:
        return time.monotonic() * 1000

    def can_fire(self, now_ms: Optional[float] = None) -> bool:
        """True when the cooldown since the last accepted event has elapsed."""
        if self._last_accepted_ms is None:
            return True
        now_ms = self._now_ms() if now_ms is None else now_ms
        return (now_ms - self._last_accepted_ms) >= self._cooldown_ms

    def try_fire(self, label: str, now_ms: Optional[float] = None) -> bool:
        """Accept the event if the cooldown allows it and record it."""
        now_ms = self._now_ms() if now_ms is None else now_ms
        if not self.can_fire(now_ms):
            logger.debug("Rejected '%s': %.0fms into %dms cooldown",
                         label, now_ms - self._last_accepted_ms, self._cooldown_ms)
            return False
        self._last_accepted_ms = now_ms
        logger.debug("Accepted '%s'", label)
        return True

    @property
    def cooldown_ms(self) -> float:
        return self._cooldown_ms

    def reset(self):
        """Clear all state."""
        self._last_accepted_ms = None
