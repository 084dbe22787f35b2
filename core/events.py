"""
Lightweight event bus for decoupled inter-module communication.

The gesture engine, sequencer and gallery publish what happened; the HUD
and the application shell subscribe to it without the core modules
knowing about any view layer.

Usage:
    bus = EventBus()
    bus.subscribe(Events.SNAPSHOT_CAPTURED, on_capture)
    bus.emit(Events.SNAPSHOT_CAPTURED, snapshot=snap, index=0, total=6)
"""

import time
import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Listeners run synchronously on the emitting thread, highest priority
    first. Detector callbacks and sequencer timers emit from worker threads,
    so listeners must not block.
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern — one bus per application."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._lock = threading.Lock()
        self._event_history = []
        self._max_history = 100
        self._enabled = True
        self._initialized = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first (default 0)
        """
        with self._lock:
            self._listeners[event_name].append((priority, callback))
            self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", callback), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        with self._lock:
            self._listeners[event_name] = [
                (p, cb) for p, cb in self._listeners[event_name] if cb is not callback
            ]

    def emit(self, event_name: str, **kwargs):
        """Emit an event to all registered listeners.

        A failing listener is logged and skipped; it never breaks the
        emitting pipeline stage.
        """
        if not self._enabled:
            return

        with self._lock:
            listeners = list(self._listeners.get(event_name, []))
            self._event_history.append({
                "event": event_name,
                "time": time.time(),
                "data_keys": list(kwargs.keys()),
            })
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history:]

        for priority, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", callback), e)

    def clear(self, event_name: str = None):
        """Remove all listeners, optionally for a specific event."""
        with self._lock:
            if event_name:
                self._listeners.pop(event_name, None)
            else:
                self._listeners.clear()

    @property
    def listener_count(self) -> int:
        """Total number of registered listeners."""
        with self._lock:
            return sum(len(cbs) for cbs in self._listeners.values())

    def get_history(self, last_n: int = 10) -> list:
        """Get recent event history."""
        with self._lock:
            return self._event_history[-last_n:]

    def reset(self):
        """Reset singleton state (for testing)."""
        with self._lock:
            self._listeners.clear()
            self._event_history.clear()
        self._enabled = True


# =============================================================================
# Standard Event Names (constants to avoid typos)
# =============================================================================

class Events:
    """Standard event names used throughout the system."""

    # Detection
    HAND_DETECTED = "hand_detected"
    HAND_LOST = "hand_lost"
    DETECTOR_ERROR = "detector_error"
    CAMERA_ERROR = "camera_error"

    # Navigation
    CATEGORY_SELECTED = "category_selected"
    ASSET_SELECTED = "asset_selected"
    GESTURE_NAVIGATED = "gesture_navigated"

    # Try-All
    TRYALL_STARTED = "tryall_started"
    SNAPSHOT_CAPTURED = "snapshot_captured"
    TRYALL_FINISHED = "tryall_finished"
    TRYALL_REJECTED = "tryall_rejected"

    # Gallery / export
    GALLERY_READY = "gallery_ready"
    BUNDLE_SAVED = "bundle_saved"
    EXPORT_WARNING = "export_warning"
    SHARE_RESULT = "share_result"

    # Lifecycle
    SYSTEM_STARTED = "system_started"
    SYSTEM_SHUTDOWN = "system_shutdown"
