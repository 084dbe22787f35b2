"""
AR compositor: draws the active jewelry onto the latest camera frame.

Runs once per face-detector result. Every cycle starts from the raw frame,
so an overlay is only ever drawn where the current face result puts it;
when no face is found the output is the plain frame.

Geometry (pixels, after projecting the normalized anchors):

    ear      = |right_ear - left_ear|
    earring  : width = ear * earring_scale, top edge at each ear anchor,
               centered horizontally on it
    necklace : width = ear * necklace_scale, top edge at
               chin.y + ear * necklace_drop, centered on the chin x

Heights keep the asset's native aspect ratio.
"""

import math
import logging
import threading
from typing import Sequence

import cv2
import numpy as np

from core.types import FaceIndex, Kind, LandmarkList
from modules.utils.logger import log_timing

logger = logging.getLogger(__name__)


def blend_rgba(surface: np.ndarray, image: np.ndarray, x: float, y: float,
               width: float, height: float) -> bool:
    """Scale ``image`` to ``width`` x ``height`` and alpha-blend it at (x, y).

    Placement is clipped to the surface; returns False if nothing landed.
    """
    w, h = int(round(width)), int(round(height))
    if w < 1 or h < 1:
        return False

    x0, y0 = int(round(x)), int(round(y))
    surf_h, surf_w = surface.shape[:2]
    dx0, dy0 = max(0, x0), max(0, y0)
    dx1, dy1 = min(surf_w, x0 + w), min(surf_h, y0 + h)
    if dx1 <= dx0 or dy1 <= dy0:
        return False

    interpolation = cv2.INTER_AREA if w < image.shape[1] else cv2.INTER_LINEAR
    scaled = cv2.resize(image, (w, h), interpolation=interpolation)
    sx0, sy0 = dx0 - x0, dy0 - y0
    patch = scaled[sy0:sy0 + (dy1 - dy0), sx0:sx0 + (dx1 - dx0)]
    dst = surface[dy0:dy1, dx0:dx1]

    if patch.ndim == 3 and patch.shape[2] == 4:
        alpha = patch[..., 3:4].astype(np.float32) / 255.0
        fg = patch[..., :3].astype(np.float32)
        dst[:] = (dst.astype(np.float32) * (1.0 - alpha) + fg * alpha).astype(np.uint8)
    else:
        dst[:] = patch[..., :3]
    return True


class ARCompositor:
    """Owns the output surface, the system's single rendering target."""

    def __init__(self, navigation, config: dict = None, surface_size=(1280, 720)):
        config = config or {}
        self._navigation = navigation
        self._earring_scale = config.get("earring_scale", 0.25)
        self._necklace_scale = config.get("necklace_scale", 1.2)
        self._necklace_drop = config.get("necklace_drop", 0.2)

        width, height = surface_size
        self._surface = np.zeros((height, width, 3), dtype=np.uint8)
        self._lock = threading.Lock()
        self._face_detected = False
        self._cycles = 0

    @property
    def size(self):
        """(width, height) of the output surface."""
        with self._lock:
            return self._surface.shape[1], self._surface.shape[0]

    @property
    def face_detected(self) -> bool:
        return self._face_detected

    @property
    def cycles(self) -> int:
        return self._cycles

    @log_timing
    def composite(self, frame: np.ndarray, faces: Sequence[LandmarkList]) -> None:
        """Redraw the surface from ``frame`` and the first face, if any."""
        # Read the slots before taking the surface lock; the sequencer holds
        # the navigation lock while capturing.
        active = self._navigation.active_assets()
        with self._lock:
            if self._surface.shape != frame.shape:
                logger.info("Output surface resized to %dx%d", frame.shape[1], frame.shape[0])
                self._surface = np.empty_like(frame)
            np.copyto(self._surface, frame)

            face = faces[0] if faces else None
            self._face_detected = face is not None and len(face) > max(FaceIndex)
            if self._face_detected:
                self._draw_jewelry(face, active)
            self._cycles += 1

    def _draw_jewelry(self, face: LandmarkList, active: dict):
        height, width = self._surface.shape[:2]
        lx, ly = face[FaceIndex.LEFT_EAR].to_pixel(width, height)
        rx, ry = face[FaceIndex.RIGHT_EAR].to_pixel(width, height)
        nx, ny = face[FaceIndex.CHIN].to_pixel(width, height)
        ear_distance = math.hypot(rx - lx, ry - ly)

        earring = active.get(Kind.EARRING)
        image = earring.image if earring is not None and earring.ready else None
        if image is not None:
            ew = ear_distance * self._earring_scale
            eh = ew * (image.shape[0] / image.shape[1])
            blend_rgba(self._surface, image, lx - ew / 2, ly, ew, eh)
            blend_rgba(self._surface, image, rx - ew / 2, ry, ew, eh)

        necklace = active.get(Kind.NECKLACE)
        image = necklace.image if necklace is not None and necklace.ready else None
        if image is not None:
            nw = ear_distance * self._necklace_scale
            nh = nw * (image.shape[0] / image.shape[1])
            blend_rgba(self._surface, image, nx - nw / 2,
                       ny + ear_distance * self._necklace_drop, nw, nh)

    def output(self) -> np.ndarray:
        """A copy of the current composited frame."""
        with self._lock:
            return self._surface.copy()

    def capture(self) -> bytes:
        """Encode the current output as PNG."""
        with self._lock:
            ok, buf = cv2.imencode(".png", self._surface)
        if not ok:
            raise RuntimeError("PNG encoding of the output surface failed")
        return buf.tobytes()
