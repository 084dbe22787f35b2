"""
Tests for the Try-All Sequencer
================================
"""

import pytest
import threading
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import Direction, Kind, Landmark, HandIndex, SequencerStatus
from core.events import EventBus, Events
from modules.catalog.assets import AssetCatalog
from modules.catalog.navigation import NavigationState
from modules.gallery.gallery import Gallery
from modules.recognition.gesture_engine import GestureEngine
from modules.tryall.scheduler import ScheduledTask, TimerScheduler
from modules.tryall.sequencer import TryAllError, TryAllSequencer


class ManualScheduler:
    """Scheduler whose tasks fire only when the test says so."""

    def __init__(self):
        self.tasks = []

    def schedule(self, delay_s, fn):
        task = ScheduledTask(fn, delay_s)
        self.tasks.append(task)
        return task

    @property
    def pending(self):
        return [t for t in self.tasks if t.pending]

    def run_next(self):
        self.pending[0].fire()


class LabelCompositor:
    """Captures the label of whatever necklace is currently worn."""

    def __init__(self, navigation):
        self._navigation = navigation
        self.captures = 0

    def capture(self):
        self.captures += 1
        asset = self._navigation.active(Kind.NECKLACE)
        return (asset.label if asset is not None else "-").encode()


@pytest.fixture
def bus():
    bus = EventBus()
    bus.reset()
    yield bus
    bus.reset()


@pytest.fixture
def nav(bus):
    catalog = AssetCatalog(
        {
            "background_loading": False,
            "categories": {
                "diamond_necklaces": {"kind": "necklace", "count": 6},
                "gold_earrings": {"kind": "earring", "count": 5},
                "empty_necklaces": {"kind": "necklace", "count": 0},
            },
        },
        image_reader=lambda p: np.full((20, 10, 4), 255, np.uint8),
    )
    return NavigationState(catalog, event_bus=bus)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def gallery(bus):
    return Gallery(event_bus=bus)


@pytest.fixture
def sequencer(nav, gallery, scheduler, bus):
    return TryAllSequencer(nav, LabelCompositor(nav), gallery,
                           {"settle_ms": 1800}, scheduler=scheduler, event_bus=bus)


class TestPreconditions:
    """Test suite for start() preconditions."""

    def test_no_category(self, sequencer, scheduler):
        with pytest.raises(TryAllError, match="Select a category first!"):
            sequencer.start()
        assert sequencer.status is SequencerStatus.IDLE
        assert scheduler.tasks == []

    def test_empty_category(self, nav, sequencer):
        nav.select_category("empty_necklaces")
        with pytest.raises(TryAllError):
            sequencer.start()
        assert sequencer.is_idle
        assert not nav.is_locked(Kind.NECKLACE)

    def test_double_start(self, nav, sequencer):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        with pytest.raises(TryAllError):
            sequencer.start()
        assert sequencer.is_running


class TestRun:
    """Test suite for a complete Try-All pass."""

    def test_full_run_captures_every_asset_in_order(self, nav, sequencer, scheduler, gallery):
        nav.select_category("diamond_necklaces")
        sequencer.start()

        for _ in range(6):
            assert sequencer.is_running
            scheduler.run_next()

        assert sequencer.status is SequencerStatus.IDLE_WITH_RESULTS
        labels = [s.png.decode() for s in sequencer.snapshots]
        assert labels == [f"diamond_necklaces/{i}" for i in range(1, 7)]
        assert [s.index for s in sequencer.snapshots] == list(range(6))
        assert [s.label for s in gallery.list()] == labels
        assert gallery.focus_index == 0
        assert scheduler.pending == []

    def test_settle_delay(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        assert scheduler.tasks[0].delay_s == pytest.approx(1.8)

    def test_first_asset_worn_immediately(self, nav, sequencer):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        assert nav.active(Kind.NECKLACE).label == "diamond_necklaces/1"
        assert sequencer.index == 0
        assert sequencer.total == 6

    def test_one_capture_per_step(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        scheduler.run_next()
        assert len(sequencer.snapshots) == 1
        assert nav.active(Kind.NECKLACE).label == "diamond_necklaces/2"
        assert len(scheduler.pending) == 1

    def test_exclusivity_released_after_run(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        assert nav.is_locked(Kind.NECKLACE)
        for _ in range(6):
            scheduler.run_next()
        assert not nav.is_locked(Kind.NECKLACE)
        assert nav.navigate(Direction.RIGHT)

    def test_other_kind_untouched(self, nav, sequencer, scheduler):
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        nav.select_category("diamond_necklaces")
        sequencer.start()
        scheduler.run_next()
        assert nav.active(Kind.EARRING).label == "gold_earrings/1"

    def test_restart_clears_previous_results(self, nav, sequencer, scheduler, gallery):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        for _ in range(6):
            scheduler.run_next()
        sequencer.start()

        assert sequencer.snapshots == ()
        assert len(gallery) == 0
        assert sequencer.is_running

    def test_events(self, nav, sequencer, scheduler, bus):
        seen = []
        for name in (Events.TRYALL_STARTED, Events.SNAPSHOT_CAPTURED,
                     Events.TRYALL_FINISHED, Events.GALLERY_READY):
            bus.subscribe(name, lambda _n=name, **kw: seen.append(_n))

        nav.select_category("gold_earrings")
        sequencer.start()
        for _ in range(5):
            scheduler.run_next()

        assert seen[0] == Events.TRYALL_STARTED
        assert seen.count(Events.SNAPSHOT_CAPTURED) == 5
        assert seen[-2:] == [Events.TRYALL_FINISHED, Events.GALLERY_READY]

    def test_capture_failure_skips_snapshot(self, nav, gallery, scheduler, bus):
        class FailingCompositor:
            def capture(self):
                raise RuntimeError("encode failed")

        seq = TryAllSequencer(nav, FailingCompositor(), gallery,
                              scheduler=scheduler, event_bus=bus)
        nav.select_category("gold_earrings")
        seq.start()
        for _ in range(5):
            scheduler.run_next()

        assert seq.status is SequencerStatus.IDLE
        assert len(gallery) == 0


class TestStop:
    """Test suite for cancelling a run."""

    def test_stop_keeps_partial_results(self, nav, sequencer, scheduler, gallery):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        scheduler.run_next()
        scheduler.run_next()
        pending = scheduler.pending[0]

        assert sequencer.stop()

        assert pending.state == ScheduledTask.CANCELLED
        assert sequencer.status is SequencerStatus.IDLE_WITH_RESULTS
        assert len(sequencer.snapshots) == 2
        assert len(gallery) == 2

    def test_cancelled_capture_never_fires(self, nav, gallery, scheduler, bus):
        compositor = LabelCompositor(nav)
        sequencer = TryAllSequencer(nav, compositor, gallery,
                                    scheduler=scheduler, event_bus=bus)
        nav.select_category("diamond_necklaces")
        sequencer.start()
        pending = scheduler.pending[0]
        sequencer.stop()

        pending.fire()
        assert compositor.captures == 0
        assert sequencer.snapshots == ()

    def test_stale_callback_ignored_after_restart(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        stale = scheduler.tasks[0]
        sequencer.stop()
        sequencer.start()

        # Bypass the cancellation flag: the generation check must still hold
        stale._fn()
        assert sequencer.snapshots == ()
        assert sequencer.index == 0

    def test_stop_before_capture(self, nav, sequencer, gallery, bus):
        finished = []
        bus.subscribe(Events.TRYALL_FINISHED,
                      lambda snapshots, completed, **kw: finished.append((len(snapshots), completed)))
        nav.select_category("diamond_necklaces")
        sequencer.start()
        sequencer.stop()

        assert sequencer.status is SequencerStatus.IDLE
        assert len(gallery) == 0
        assert finished == [(0, False)]
        assert not nav.is_locked(Kind.NECKLACE)

    def test_stop_when_idle(self, sequencer):
        assert not sequencer.stop()

    def test_category_switch_during_run_keeps_pointer_valid(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        scheduler.run_next()
        nav.select_category("empty_necklaces")
        scheduler.run_next()
        sequencer.stop()

        assert nav.current_category.id == "diamond_necklaces"
        assert [s.png.decode() for s in sequencer.snapshots] == [
            "diamond_necklaces/1", "diamond_necklaces/2"]
        active = nav.active(Kind.NECKLACE)
        assert active is None or active in nav.current_assets()

    def test_toggle(self, nav, sequencer):
        nav.select_category("diamond_necklaces")
        assert sequencer.toggle() is True
        assert sequencer.toggle() is False

    def test_clear_results(self, nav, sequencer, scheduler):
        nav.select_category("diamond_necklaces")
        sequencer.start()
        scheduler.run_next()
        sequencer.stop()
        sequencer.clear_results()
        assert sequencer.status is SequencerStatus.IDLE
        assert sequencer.snapshots == ()


class TestGestureSuppression:
    """Swipes have no effect while Try-All is cycling."""

    def test_swipe_ignored_during_run(self, nav, sequencer, scheduler):
        engine = GestureEngine(nav, is_suppressed=lambda: sequencer.is_running)
        hand = [Landmark(0.5, 0.5) for _ in range(21)]
        hand[HandIndex.INDEX_TIP] = Landmark(0.8, 0.3)

        nav.select_category("diamond_necklaces")
        sequencer.start()
        outcome = engine.process([hand], now_ms=0)

        assert not outcome.accepted
        assert nav.active(Kind.NECKLACE).label == "diamond_necklaces/1"

        sequencer.stop()
        assert engine.process([hand], now_ms=1).accepted
        assert nav.active(Kind.NECKLACE).label == "diamond_necklaces/2"


class TestTimerScheduler:
    """Test suite for the thread-backed scheduler."""

    def test_fires(self):
        fired = threading.Event()
        TimerScheduler().schedule(0.01, fired.set)
        assert fired.wait(2.0)

    def test_cancel(self):
        fired = threading.Event()
        task = TimerScheduler().schedule(0.05, fired.set)
        assert task.cancel()
        assert not fired.wait(0.2)
        assert task.state == ScheduledTask.CANCELLED

    def test_cancel_stops_timer_thread(self):
        scheduler = TimerScheduler()
        task = scheduler.schedule(30.0, lambda: None)
        timer = scheduler._timers[id(task)]

        task.cancel()
        timer.join(1.0)

        assert not timer.is_alive()
        assert scheduler._timers == {}

    def test_stop_leaves_no_timer_running(self, nav, gallery, bus):
        scheduler = TimerScheduler()
        sequencer = TryAllSequencer(nav, LabelCompositor(nav), gallery,
                                    {"settle_ms": 30000}, scheduler=scheduler, event_bus=bus)
        nav.select_category("diamond_necklaces")
        sequencer.start()
        timers = list(scheduler._timers.values())
        sequencer.stop()

        for timer in timers:
            timer.join(1.0)
            assert not timer.is_alive()

    def test_fires_at_most_once(self):
        calls = []
        task = ScheduledTask(lambda: calls.append(1), 0)
        task.fire()
        task.fire()
        assert calls == [1]
        assert not task.cancel()

    def test_cancel_all(self):
        fired = threading.Event()
        scheduler = TimerScheduler()
        scheduler.schedule(0.05, fired.set)
        scheduler.cancel_all()
        assert not fired.wait(0.2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
