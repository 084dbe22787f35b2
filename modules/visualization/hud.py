"""
Heads-up display drawn on the window copy of the composited frame.

Never touches the compositor surface, so snapshots stay clean. Shows the
hand indicator, a short gold flash on accepted swipes, a white flash on
every Try-All capture, the current look and transient toast messages.
"""

import time
import logging
import threading
import cv2
import numpy as np

from core.events import EventBus, Events

logger = logging.getLogger(__name__)

GOLD = (55, 175, 212)        # BGR for #d4af37
ACTIVE_GREEN = (136, 255, 0)  # BGR for #00ff88
IDLE_GREY = (85, 85, 85)


class HUD:
    """Indicator, flashes and toasts driven by bus events."""

    def __init__(self, config: dict = None, event_bus: EventBus = None,
                 flash_ms: int = 300, capture_flash_ms: int = 100):
        config = config or {}
        self._opacity = config.get("bar_opacity", 0.6)
        self._bar_height = config.get("bar_height", 56)
        self._toast_s = config.get("toast_seconds", 2.5)
        self._flash_s = flash_ms / 1000.0
        self._capture_flash_s = capture_flash_ms / 1000.0

        self._lock = threading.Lock()
        self._hand_detected = False
        self._gesture_flash_until = 0.0
        self._capture_flash_until = 0.0
        self._toast = None
        self._toast_until = 0.0

        bus = event_bus or EventBus()
        bus.subscribe(Events.HAND_DETECTED, lambda **_: self._set_hand(True))
        bus.subscribe(Events.HAND_LOST, lambda **_: self._set_hand(False))
        bus.subscribe(Events.GESTURE_NAVIGATED, self._on_gesture)
        bus.subscribe(Events.SNAPSHOT_CAPTURED, self._on_capture)
        bus.subscribe(Events.TRYALL_REJECTED, lambda message="", **_: self.toast(message))
        bus.subscribe(Events.CAMERA_ERROR, lambda message="", **_: self.toast(message))
        bus.subscribe(Events.BUNDLE_SAVED, lambda path="", **_: self.toast(f"Saved {path}"))
        bus.subscribe(Events.EXPORT_WARNING, lambda message="", **_: self.toast(message))

    def _set_hand(self, detected: bool):
        with self._lock:
            self._hand_detected = detected

    def _on_gesture(self, **kwargs):
        with self._lock:
            self._gesture_flash_until = time.time() + self._flash_s

    def _on_capture(self, **kwargs):
        with self._lock:
            self._capture_flash_until = time.time() + self._capture_flash_s

    def toast(self, message: str):
        """Show ``message`` for a few seconds."""
        if not message:
            return
        with self._lock:
            self._toast = message
            self._toast_until = time.time() + self._toast_s

    def render(self, frame: np.ndarray, state: dict) -> np.ndarray:
        """Draw the HUD onto ``frame`` (a display copy) and return it.

        Args:
            frame: BGR frame to draw on
            state: dict with
                - category: str or None
                - asset: str or None (active look label)
                - tryall: (index, total) while running, else None
                - gallery: int, snapshots available
                - fps: float
        """
        now = time.time()
        with self._lock:
            hand = self._hand_detected
            gesture_flash = now < self._gesture_flash_until
            capture_flash = now < self._capture_flash_until
            toast = self._toast if now < self._toast_until else None

        h, w = frame.shape[:2]

        if capture_flash:
            white = np.full_like(frame, 255)
            cv2.addWeighted(white, 0.6, frame, 0.4, 0, frame)

        overlay = frame.copy()
        cv2.rectangle(overlay, (0, 0), (w, self._bar_height), (20, 20, 20), -1)
        cv2.addWeighted(overlay, self._opacity, frame, 1 - self._opacity, 0, frame)

        # Hand indicator
        if gesture_flash:
            dot = GOLD
        else:
            dot = ACTIVE_GREEN if hand else IDLE_GREY
        cv2.circle(frame, (22, self._bar_height // 2), 9, dot, -1)
        cv2.putText(frame, "Gesture Active" if hand else "Hand Not Detected",
                    (40, self._bar_height // 2 + 6), cv2.FONT_HERSHEY_SIMPLEX,
                    0.6, (255, 255, 255), 1, cv2.LINE_AA)

        look = state.get("category") or "No category"
        if state.get("asset"):
            look = f"{look}  |  {state['asset']}"
        cv2.putText(frame, look, (260, self._bar_height // 2 + 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, GOLD, 1, cv2.LINE_AA)

        progress = state.get("tryall")
        if progress:
            index, total = progress
            label = f"TRY ALL {index + 1}/{total}  [t] stop"
            cv2.putText(frame, label, (w - 260, self._bar_height // 2 + 6),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 200, 255), 2, cv2.LINE_AA)
        elif state.get("gallery"):
            cv2.putText(frame, f"{state['gallery']} looks  [z] zip  [s] share",
                        (w - 300, self._bar_height // 2 + 6),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.55, (255, 255, 255), 1, cv2.LINE_AA)

        if state.get("fps"):
            cv2.putText(frame, f"{state['fps']:.0f} FPS", (10, h - 12),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (200, 200, 200), 1, cv2.LINE_AA)

        if toast:
            self._draw_toast(frame, toast, w, h)

        return frame

    def _draw_toast(self, frame, message, w, h):
        (tw, th), _ = cv2.getTextSize(message, cv2.FONT_HERSHEY_SIMPLEX, 0.7, 2)
        x1 = max(0, (w - tw) // 2 - 16)
        y1 = h - 80
        overlay = frame.copy()
        cv2.rectangle(overlay, (x1, y1), (x1 + tw + 32, y1 + th + 24), (40, 40, 40), -1)
        cv2.addWeighted(overlay, 0.8, frame, 0.2, 0, frame)
        cv2.putText(frame, message, (x1 + 16, y1 + th + 12),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2, cv2.LINE_AA)
