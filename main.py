#!/usr/bin/env python3
"""
Aurum Atelier - real-time virtual jewelry try-on.
Main application entry point.

Swipe the index finger left/right to browse the current category, or let
Try-All wear every piece in turn and collect one snapshot per look.

Usage:
    python main.py                              # default config/config.yaml
    python main.py --category diamond_necklaces
    python main.py --camera 1 --assets /path/to/jewelry

Keys:
    1..9  select category        a / d  previous / next piece
    t     Try-All start/stop     [ / ]  gallery focus
    z     save ZIP bundle        s      share
    c     clear gallery          q      quit
"""

import sys
import os
import time
import signal
import argparse
import logging

import cv2
import numpy as np

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from modules.utils.config import Config
from modules.utils.logger import setup_logging
from modules.utils.performance_monitor import PerformanceMonitor
from modules.capture.camera_manager import CameraManager, CameraError
from modules.detection.landmark_detectors import HandDetector, FaceMeshDetector
from modules.detection.stream_adapter import LandmarkStreamAdapter
from modules.recognition.gesture_engine import GestureEngine
from modules.catalog.assets import AssetCatalog
from modules.catalog.navigation import NavigationState
from modules.overlay.compositor import ARCompositor
from modules.tryall.sequencer import TryAllSequencer, TryAllError
from modules.gallery.gallery import Gallery, ShareOutcome
from modules.visualization.hud import HUD

from core.types import DetectorKind
from core.events import EventBus, Events
from core.pipeline import Pipeline

logger = logging.getLogger(__name__)


class AurumAtelier:
    """Main application wiring capture, detection, overlay and Try-All."""

    def __init__(self, config: Config):
        self._config = config
        self._running = False
        self._bus = EventBus()

        # Capture
        self._camera = CameraManager(config.camera)
        self._perf = PerformanceMonitor()

        # Catalog & state
        self._catalog = AssetCatalog(config.catalog, base_dir=config.base_dir)
        self._navigation = NavigationState(self._catalog, event_bus=self._bus)

        # Overlay, Try-All, gallery
        self._compositor = ARCompositor(
            self._navigation, config.overlay,
            surface_size=(config.get("camera.width", 1280), config.get("camera.height", 720)),
        )
        self._gallery = Gallery(config.export, event_bus=self._bus)
        self._sequencer = TryAllSequencer(
            self._navigation, self._compositor, self._gallery,
            config.tryall, event_bus=self._bus,
        )

        # Detection
        self._hand_detector = HandDetector(config.get("detection.hands", {}))
        self._face_detector = FaceMeshDetector(config.get("detection.face", {}))
        self._gesture = GestureEngine(
            self._navigation, config.gesture,
            is_suppressed=lambda: self._sequencer.is_running,
            event_bus=self._bus,
        )
        self._adapter = LandmarkStreamAdapter(self._perf, event_bus=self._bus)

        self._pipeline = Pipeline(
            camera=self._camera,
            adapter=self._adapter,
            compositor=self._compositor,
            navigation=self._navigation,
            sequencer=self._sequencer,
            gallery=self._gallery,
            performance_monitor=self._perf,
            detectors={
                DetectorKind.HAND: self._hand_detector,
                DetectorKind.FACE: self._face_detector,
            },
            gesture_engine=self._gesture,
        )

        # Visualization
        self._hud = HUD(
            config.visualization, event_bus=self._bus,
            flash_ms=config.get("gesture.flash_ms", 300),
            capture_flash_ms=config.get("tryall.capture_flash_ms", 100),
        )
        self._window = config.get("visualization.window_name", "Aurum Atelier")
        self._gallery_window = config.get("visualization.gallery_window", "Aurum Gallery")
        self._gallery_shown = False

        self._bus.subscribe(Events.GALLERY_READY, self._on_gallery_ready)
        logger.info("Aurum Atelier initialized")

    def _on_gallery_ready(self, snapshots=(), **kwargs):
        logger.info("Gallery ready: %d looks ([ ] to browse, z to save)", len(snapshots))

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def select_category(self, category_id: str):
        try:
            self._navigation.select_category(category_id)
        except KeyError as e:
            logger.warning("%s", e)
            self._hud.toast(f"Unknown category {category_id}")

    def toggle_try_all(self):
        try:
            self._sequencer.toggle()
        except TryAllError as e:
            logger.warning("Try-All not started: %s", e)
            self._bus.emit(Events.TRYALL_REJECTED, message=str(e))

    def save_bundle(self):
        if not len(self._gallery):
            self._hud.toast("Run Try-All first")
            return
        output_dir = self._config.resolve_path(self._config.get("export.output_dir", "exports"))
        try:
            self._gallery.save_bundle(output_dir)
        except OSError as e:
            logger.error("Could not save bundle: %s", e)
            self._hud.toast("Download failed")

    def share(self):
        outcome = self._gallery.share()
        if outcome is ShareOutcome.UNSUPPORTED:
            self._hud.toast("Sharing not supported; use z to download")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def start(self, category: str = None) -> bool:
        """Open the camera and run until quit."""
        try:
            self._camera.open()
        except CameraError as e:
            logger.error("Camera Error: %s", e)
            self._bus.emit(Events.CAMERA_ERROR, message="Camera unavailable")
            return False

        self._camera.start_async()
        logger.debug("Capture resolution %dx%d", *self._camera.resolution)

        if category:
            self.select_category(category)

        self._running = True
        self._bus.emit(Events.SYSTEM_STARTED)
        logger.info("Camera successfully initialized.")
        self._run_main_loop()
        return True

    def _run_main_loop(self):
        categories = [c.id for c in self._catalog.categories]
        show = self._config.get("visualization.enabled", True)

        while self._running:
            result = self._pipeline.tick()

            if show:
                frame = self._hud.render(result.frame, self._pipeline.build_state())
                cv2.imshow(self._window, frame)
                self._show_gallery()

            key = cv2.waitKey(1) & 0xFF
            if key == 255:
                if not result.new_frame:
                    time.sleep(0.002)
                continue
            self._handle_key(key, categories)

        self._shutdown()

    def _handle_key(self, key: int, categories: list):
        if key == ord("q"):
            self._running = False
        elif ord("1") <= key <= ord("9"):
            idx = key - ord("1")
            if idx < len(categories):
                self.select_category(categories[idx])
        elif key == ord("a"):
            if not self._sequencer.is_running:
                self._navigation.navigate(-1)
        elif key == ord("d"):
            if not self._sequencer.is_running:
                self._navigation.navigate(1)
        elif key == ord("t"):
            self.toggle_try_all()
        elif key == ord("["):
            self._gallery.step_focus(-1)
        elif key == ord("]"):
            self._gallery.step_focus(1)
        elif key == ord("z"):
            self.save_bundle()
        elif key == ord("s"):
            self.share()
        elif key == ord("c"):
            self._gallery.clear()
            self._sequencer.clear_results()
        elif key == ord("p"):
            self._perf.print_report()

    def _show_gallery(self):
        snapshot = self._gallery.focused()
        if snapshot is None:
            if self._gallery_shown:
                cv2.destroyWindow(self._gallery_window)
                self._gallery_shown = False
            return
        image = cv2.imdecode(np.frombuffer(snapshot.png, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            return
        label = f"{(self._gallery.focus_index or 0) + 1}/{len(self._gallery)}  {snapshot.label}"
        cv2.putText(image, label, (12, 28), cv2.FONT_HERSHEY_SIMPLEX, 0.8,
                    (55, 175, 212), 2, cv2.LINE_AA)
        cv2.imshow(self._gallery_window, image)
        self._gallery_shown = True

    def _shutdown(self):
        """Clean shutdown of all modules."""
        logger.info("Shutting down...")
        self._running = False
        self._sequencer.shutdown()
        self._camera.stop()
        self._adapter.shutdown(wait=True)
        self._hand_detector.close()
        self._face_detector.close()
        self._catalog.close()
        cv2.destroyAllWindows()
        self._bus.emit(Events.SYSTEM_SHUTDOWN)
        self._perf.print_report()
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False


def parse_args():
    parser = argparse.ArgumentParser(
        description="Aurum Atelier - real-time virtual jewelry try-on"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to config.yaml"
    )
    parser.add_argument(
        "--camera", type=int, default=None,
        help="Camera device ID"
    )
    parser.add_argument(
        "--category", type=str, default=None,
        help="Category to select at startup (e.g. gold_earrings)"
    )
    parser.add_argument(
        "--assets", type=str, default=None,
        help="Directory holding <category>/<n>.png jewelry images"
    )
    return parser.parse_args()


def main():
    args = parse_args()

    config = Config()
    config.load(config_path=args.config)

    if args.camera is not None:
        config.set("camera.device_id", args.camera)
    if args.assets is not None:
        config.set("catalog.asset_root", os.path.abspath(args.assets))

    log_cfg = config.get_section("logging")
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    logger.info("=" * 60)
    logger.info("  AURUM ATELIER - Virtual Jewelry Try-On")
    logger.info("  Version: %s", config.get("system.version", "1.0.0"))
    logger.info("=" * 60)

    app = AurumAtelier(config)

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    if not app.start(category=args.category):
        sys.exit(1)


if __name__ == "__main__":
    main()
