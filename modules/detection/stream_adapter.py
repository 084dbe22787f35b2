"""
Landmark stream adapter: per-detector in-flight guard.

Each detector kind owns one busy flag and one single-worker executor. A
frame offered while that detector is still working on an earlier frame is
dropped for that detector, never queued, which bounds latency at the cost
of coverage. The flag is released when the result callback runs, whatever
the outcome (landmarks, nothing detected, or a detector exception).

Because at most one call per kind is in flight and the executor has a
single worker, results of one kind reach their handler in submission
order. The two kinds are independent of each other.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from core.types import DetectorKind, LandmarkList
from core.events import EventBus, Events

logger = logging.getLogger(__name__)

# handler(frame, results) where results is a list of landmark sequences
ResultHandler = Callable[[np.ndarray, List[LandmarkList]], None]
DetectFn = Callable[[np.ndarray], List[LandmarkList]]


class _Channel:
    """Detector, its handler, and the busy flag guarding it."""

    __slots__ = ("kind", "detect", "handler", "executor", "busy", "owns_executor")

    def __init__(self, kind: DetectorKind, detect: DetectFn, handler: ResultHandler,
                 executor: Optional[Executor]):
        self.kind = kind
        self.detect = detect
        self.handler = handler
        self.owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"{kind.value}-detector")
        self.busy = False


class LandmarkStreamAdapter:
    """Offers frames to detectors, dropping frames for busy ones."""

    def __init__(self, performance_monitor=None, event_bus: EventBus = None):
        self._channels: Dict[DetectorKind, _Channel] = {}
        self._lock = threading.Lock()
        self._perf = performance_monitor
        self._bus = event_bus or EventBus()

    def register(self, kind: DetectorKind, detect: DetectFn, handler: ResultHandler,
                 executor: Executor = None):
        """Attach a detector and the handler for its results.

        Args:
            kind: Detector kind (one channel per kind)
            detect: ``detect(frame) -> [landmarks, ...]``; may block
            handler: Called with the offered frame and the detector's results
            executor: Optional executor to run ``detect`` on (default: a
                private single-worker thread pool)
        """
        with self._lock:
            self._channels[kind] = _Channel(kind, detect, handler, executor)
        logger.debug("Registered %s detector", kind.value)

    def is_busy(self, kind: DetectorKind) -> bool:
        with self._lock:
            return self._channels[kind].busy

    def offer(self, frame: np.ndarray, kind: DetectorKind) -> bool:
        """Submit ``frame`` to the ``kind`` detector unless it is busy.

        Returns:
            True if the detector accepted the frame, False if it was dropped
        """
        with self._lock:
            channel = self._channels[kind]
            if channel.busy:
                if self._perf is not None:
                    self._perf.record_drop(kind.value)
                return False
            channel.busy = True

        if self._perf is not None:
            self._perf.record_accept(kind.value)
        try:
            future = channel.executor.submit(channel.detect, frame)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning("%s detector unavailable: %s", kind.value, e)
            self._release(channel)
            return False
        future.add_done_callback(lambda f: self._on_result(channel, frame, f))
        return True

    def offer_all(self, frame: np.ndarray) -> Dict[DetectorKind, bool]:
        """Offer one frame to every registered detector."""
        with self._lock:
            kinds = list(self._channels)
        return {kind: self.offer(frame, kind) for kind in kinds}

    def _on_result(self, channel: _Channel, frame: np.ndarray, future: Future):
        results: Sequence[LandmarkList] = []
        try:
            results = future.result() or []
        except Exception as e:
            logger.error("%s detector failed: %s", channel.kind.value, e)
            self._bus.emit(Events.DETECTOR_ERROR, kind=channel.kind, error=e)
            results = []

        try:
            channel.handler(frame, list(results))
        except Exception as e:
            logger.exception("%s result handler failed: %s", channel.kind.value, e)
        finally:
            self._release(channel)

    def _release(self, channel: _Channel):
        with self._lock:
            channel.busy = False

    def shutdown(self, wait: bool = True):
        """Stop detector executors owned by the adapter."""
        with self._lock:
            channels = list(self._channels.values())
        for channel in channels:
            if channel.owns_executor:
                channel.executor.shutdown(wait=wait)
