"""
Real-time performance monitoring with per-stage latency tracking and
per-detector accept/drop counters.
Thread-safe metrics collection with rolling windows.
"""

import time
import threading
import logging
from collections import deque, Counter
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Tracks display FPS, stage latency and detector backpressure."""

    def __init__(self, window_size=100):
        self._window_size = window_size
        self._lock = threading.Lock()

        self._frame_times = deque(maxlen=window_size)
        self._last_frame_time = None

        self._stage_times = {}

        # Detector offers, keyed by detector name
        self._accepted = Counter()
        self._dropped = Counter()

        self._frame_count = 0
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a stage's duration."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                if stage_name not in self._stage_times:
                    self._stage_times[stage_name] = deque(maxlen=self._window_size)
                self._stage_times[stage_name].append(elapsed_ms)

    def tick(self):
        """Call once per displayed frame to track FPS."""
        now = time.perf_counter()
        with self._lock:
            if self._last_frame_time is not None:
                self._frame_times.append(now - self._last_frame_time)
            self._last_frame_time = now
            self._frame_count += 1

    def record_accept(self, detector: str):
        with self._lock:
            self._accepted[detector] += 1

    def record_drop(self, detector: str):
        """Record a frame skipped because the detector was still busy."""
        with self._lock:
            self._dropped[detector] += 1

    def accepted(self, detector: str) -> int:
        with self._lock:
            return self._accepted[detector]

    def dropped(self, detector: str) -> int:
        with self._lock:
            return self._dropped[detector]

    @property
    def fps(self) -> float:
        """Current frames per second (rolling average)."""
        with self._lock:
            if len(self._frame_times) < 2:
                return 0.0
            avg_interval = sum(self._frame_times) / len(self._frame_times)
            return 1.0 / avg_interval if avg_interval > 0 else 0.0

    def get_stage_latency(self, stage_name: str) -> float:
        """Get average latency for a specific stage in ms."""
        with self._lock:
            times = self._stage_times.get(stage_name)
            if not times:
                return 0.0
            return sum(times) / len(times)

    def get_report(self) -> dict:
        """Generate a performance report."""
        with self._lock:
            latencies = {
                name: (sum(times) / len(times) if times else 0.0)
                for name, times in self._stage_times.items()
            }
            detectors = {
                name: {"accepted": self._accepted[name], "dropped": self._dropped[name]}
                for name in sorted(set(self._accepted) | set(self._dropped))
            }
            frames = self._frame_count
        return {
            "fps": round(self.fps, 1),
            "total_frames": frames,
            "uptime_seconds": round(time.time() - self._start_time, 1),
            "latencies_ms": {k: round(v, 2) for k, v in latencies.items()},
            "detectors": detectors,
        }

    def print_report(self):
        """Log a formatted performance report."""
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        logger.info("FPS:            %.1f", report["fps"])
        logger.info("Total Frames:   %d", report["total_frames"])
        logger.info("Uptime:         %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        for name, counts in report["detectors"].items():
            logger.info("  %-8s accepted %6d  dropped %6d",
                        name, counts["accepted"], counts["dropped"])
        logger.info("Stage Latencies (avg ms):")
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-18s %7.2f ms", stage, latency)
        logger.info("=" * 60)
