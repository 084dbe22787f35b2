"""
Try-All sequencer: wear every asset of the current category in turn and
capture one snapshot of each.

    IDLE --start()--> RUNNING(0) --settle--> RUNNING(1) ... --> IDLE_WITH_RESULTS
                          |                                         |
                          +------------- stop() -------------------+
                                      (IDLE if nothing captured)

Each step puts ``list[i]`` on through the navigation state's exclusive
path and schedules a single capture after a fixed settle delay: the asset
may still be decoding and face results arrive on their own cadence, so the
sequencer waits a fixed time instead of polling. ``stop()`` cancels the
pending capture; partial runs still hand their snapshots to the gallery.
"""

import logging
from typing import List, Tuple

from core.types import SequencerStatus, Snapshot
from core.events import EventBus, Events
from modules.tryall.scheduler import TimerScheduler

logger = logging.getLogger(__name__)


class TryAllError(RuntimeError):
    """Try-All cannot start (no category selected, empty catalog, ...)."""


class TryAllSequencer:
    """Timed, cancellable asset cycling with capture."""

    def __init__(self, navigation, compositor, gallery=None, config: dict = None,
                 scheduler=None, event_bus: EventBus = None):
        config = config or {}
        self._navigation = navigation
        self._compositor = compositor
        self._gallery = gallery
        self._settle_s = config.get("settle_ms", 1800) / 1000.0
        self._scheduler = scheduler or TimerScheduler()
        self._bus = event_bus or EventBus()

        # Guarded by the navigation lock: every mutation path shares it
        self._lock = navigation.lock
        self._status = SequencerStatus.IDLE
        self._index = 0
        self._assets = []
        self._snapshots: List[Snapshot] = []
        self._token = None
        self._pending = None
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> SequencerStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is SequencerStatus.RUNNING

    @property
    def is_idle(self) -> bool:
        return self._status is not SequencerStatus.RUNNING

    @property
    def index(self) -> int:
        return self._index

    @property
    def total(self) -> int:
        return len(self._assets)

    @property
    def snapshots(self) -> Tuple[Snapshot, ...]:
        with self._lock:
            return tuple(self._snapshots)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self):
        """Begin a run over the current category.

        Raises:
            TryAllError: no category selected, its list is empty, or a run
                is already in progress. State is left untouched.
        """
        with self._lock:
            if self.is_running:
                raise TryAllError("Try-All is already running")
            category = self._navigation.current_category
            if category is None:
                raise TryAllError("Select a category first!")
            assets = self._navigation.current_assets()
            if not assets:
                raise TryAllError(f"Category '{category.id}' has no assets")

            self._token = self._navigation.begin_exclusive()
            self._assets = assets
            self._snapshots = []
            if self._gallery is not None:
                self._gallery.clear()
            self._status = SequencerStatus.RUNNING
            self._step(0)

        logger.info("Try-All started: %s (%d assets, %.1fs each)",
                    category.id, len(assets), self._settle_s)
        self._bus.emit(Events.TRYALL_STARTED, category=category, total=len(assets))

    def stop(self) -> bool:
        """Abort a running pass. Returns False if nothing was running."""
        with self._lock:
            if not self.is_running:
                return False
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            results = self._finish()

        logger.info("Try-All stopped after %d/%d captures", len(results), len(self._assets))
        self._surface(results, completed=False)
        return True

    def toggle(self) -> bool:
        """Start when idle, stop when running. Returns the new running state."""
        if self.is_running:
            self.stop()
        else:
            self.start()
        return self.is_running

    def clear_results(self):
        """Drop captured snapshots (not while running)."""
        with self._lock:
            if self.is_running:
                return
            self._snapshots = []
            self._status = SequencerStatus.IDLE

    # ------------------------------------------------------------------
    # Steps (called with the lock held)
    # ------------------------------------------------------------------

    def _step(self, index: int):
        self._index = index
        asset = self._navigation.assign_exclusive(self._token, index)
        self._generation += 1
        generation = self._generation
        self._pending = self._scheduler.schedule(
            self._settle_s, lambda: self._on_settled(generation))
        logger.debug("Try-All step %d/%d: %s", index + 1, len(self._assets), asset.label)

    def _on_settled(self, generation: int):
        captured = None
        results = None
        with self._lock:
            if not self.is_running or generation != self._generation:
                return
            self._pending = None
            asset = self._navigation.active(self._token.kind)
            try:
                png = self._compositor.capture()
            except RuntimeError as e:
                logger.error("Capture %d failed: %s", self._index + 1, e)
            else:
                captured = Snapshot(png, index=self._index,
                                    label=asset.label if asset is not None else "")
                self._snapshots.append(captured)

            if self._index + 1 >= len(self._assets):
                results = self._finish()
            else:
                self._step(self._index + 1)

        if captured is not None:
            self._bus.emit(Events.SNAPSHOT_CAPTURED, snapshot=captured,
                           index=captured.index, total=len(self._assets))
        if results is not None:
            logger.info("Try-All complete: %d snapshots", len(results))
            self._surface(results, completed=True)

    def _finish(self) -> Tuple[Snapshot, ...]:
        self._navigation.end_exclusive(self._token)
        self._token = None
        results = tuple(self._snapshots)
        self._status = SequencerStatus.IDLE_WITH_RESULTS if results else SequencerStatus.IDLE
        return results

    def _surface(self, results: Tuple[Snapshot, ...], completed: bool):
        self._bus.emit(Events.TRYALL_FINISHED, snapshots=results, completed=completed)
        if not results:
            return
        if self._gallery is not None:
            self._gallery.populate(results)
        self._bus.emit(Events.GALLERY_READY, snapshots=results)

    def shutdown(self):
        self.stop()
        cancel_all = getattr(self._scheduler, "cancel_all", None)
        if cancel_all is not None:
            cancel_all()
