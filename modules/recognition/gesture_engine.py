"""
Swipe gesture recognition for jewelry navigation.

Classifies the horizontal offset of the index fingertip from the index
knuckle of the first reported hand:

    d = tip.x - knuckle.x
    d >  threshold  -> RIGHT (+1)
    d < -threshold  -> LEFT  (-1)

Accepted swipes are applied to the navigation state immediately. A single
cooldown shared by both directions debounces them, and every candidate is
dropped while Try-All is cycling assets.
"""

import logging
from typing import Callable, Optional, Sequence

from core.types import Direction, GestureOutcome, HandIndex, LandmarkList
from core.events import EventBus, Events
from modules.control.debouncer import Debouncer

logger = logging.getLogger(__name__)


def classify_swipe(landmarks: LandmarkList, threshold: float = 0.12) -> Optional[Direction]:
    """Swipe candidate for one hand, or None inside the dead zone."""
    d = landmarks[HandIndex.INDEX_TIP].x - landmarks[HandIndex.INDEX_MCP].x
    if d > threshold:
        return Direction.RIGHT
    if d < -threshold:
        return Direction.LEFT
    return None


class GestureEngine:
    """Turns hand-detector results into debounced navigation events."""

    def __init__(self, navigation, config: dict = None,
                 is_suppressed: Callable[[], bool] = None,
                 event_bus: EventBus = None):
        config = config or {}
        self._navigation = navigation
        self._threshold = config.get("swipe_threshold", 0.12)
        self._debouncer = Debouncer(config)
        self._is_suppressed = is_suppressed or (lambda: False)
        self._bus = event_bus or EventBus()
        self._hand_detected = False

    def set_suppressor(self, is_suppressed: Callable[[], bool]):
        """Install the "Try-All is running" predicate."""
        self._is_suppressed = is_suppressed

    @property
    def hand_detected(self) -> bool:
        return self._hand_detected

    def process(self, hands: Sequence[LandmarkList],
                now_ms: Optional[float] = None) -> GestureOutcome:
        """Handle one hand-detector result (zero or more hands)."""
        detected = bool(hands) and len(hands[0]) > HandIndex.INDEX_TIP
        self._update_indicator(detected)
        if not detected:
            return GestureOutcome(detected=False)

        candidate = classify_swipe(hands[0], self._threshold)
        if candidate is None:
            return GestureOutcome(detected=True)

        if self._is_suppressed():
            logger.debug("Swipe %s suppressed during Try-All", candidate.name)
            return GestureOutcome(detected=True, candidate=candidate)

        if not self._debouncer.try_fire(candidate.name, now_ms):
            return GestureOutcome(detected=True, candidate=candidate)

        self._navigation.navigate(candidate)
        logger.info("Swipe %s", candidate.name.lower())
        self._bus.emit(Events.GESTURE_NAVIGATED, direction=candidate)
        return GestureOutcome(detected=True, candidate=candidate, accepted=True)

    def on_hand_result(self, frame, hands: Sequence[LandmarkList]):
        """Stream-adapter handler signature."""
        self.process(hands)

    def _update_indicator(self, detected: bool):
        if detected == self._hand_detected:
            return
        self._hand_detected = detected
        self._bus.emit(Events.HAND_DETECTED if detected else Events.HAND_LOST)

    def reset(self):
        self._debouncer.reset()
        self._hand_detected = False
