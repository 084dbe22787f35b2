"""
Per-frame orchestration for the try-on system.

Architecture:
    Camera -> LandmarkStreamAdapter -+-> HandDetector -> GestureEngine -> NavigationState
                                     +-> FaceMesh     -> ARCompositor  <- NavigationState
    TryAllSequencer -> NavigationState, ARCompositor.capture() -> Gallery

The pipeline itself never blocks on a detector: it offers each new camera
frame to both detectors (busy ones drop it) and displays whatever the
compositor last produced.
"""

import logging
from typing import Optional

import numpy as np

from core.types import DetectorKind

logger = logging.getLogger(__name__)


class PipelineResult:
    """Result of a single pipeline iteration."""

    __slots__ = ("frame", "frame_id", "new_frame", "offered")

    def __init__(self):
        self.frame: Optional[np.ndarray] = None
        self.frame_id = None
        self.new_frame = False
        self.offered = {}


class Pipeline:
    """Wires camera frames into the detectors and exposes the output."""

    def __init__(self, camera, adapter, compositor, navigation, sequencer, gallery,
                 performance_monitor, detectors: dict = None, gesture_engine=None):
        self._camera = camera
        self._adapter = adapter
        self._compositor = compositor
        self._navigation = navigation
        self._sequencer = sequencer
        self._gallery = gallery
        self._perf = performance_monitor
        self._last_frame_id = None

        if detectors:
            self._adapter.register(DetectorKind.FACE, detectors[DetectorKind.FACE],
                                   self._on_face)
            if gesture_engine is not None:
                self._adapter.register(DetectorKind.HAND, detectors[DetectorKind.HAND],
                                       gesture_engine.on_hand_result)

    def _on_face(self, frame, faces):
        with self._perf.measure("composite"):
            self._compositor.composite(frame, faces)

    def tick(self) -> PipelineResult:
        """Offer the newest camera frame and return the current output."""
        result = PipelineResult()
        frame_id, frame = self._camera.read()
        if frame is not None and frame_id != self._last_frame_id:
            self._last_frame_id = frame_id
            result.new_frame = True
            result.frame_id = frame_id
            result.offered = self._adapter.offer_all(frame)

        result.frame = self._compositor.output()
        self._perf.tick()
        return result

    def build_state(self) -> dict:
        """State dict for HUD rendering."""
        category = self._navigation.current_category
        asset = self._navigation.active(category.kind) if category is not None else None
        tryall = None
        if self._sequencer.is_running:
            tryall = (self._sequencer.index, self._sequencer.total)
        return {
            "category": category.id if category is not None else None,
            "asset": asset.label if asset is not None else None,
            "tryall": tryall,
            "gallery": len(self._gallery),
            "fps": self._perf.fps,
        }
