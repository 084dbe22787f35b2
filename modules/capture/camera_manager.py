"""
Async camera capture with threaded buffering for minimal latency.
The capture thread always holds only the most recent frame.
"""

import time
import threading
import logging
import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """The camera could not be opened."""


class CameraManager:
    """Threaded frame acquisition from an OpenCV capture device."""

    def __init__(self, config: dict):
        self._device_id = config.get("device_id", 0)
        self._width = config.get("width", 1280)
        self._height = config.get("height", 720)
        self._fps = config.get("fps", 30)
        self._backend = config.get("backend", "auto")
        self._flip_h = config.get("flip_horizontal", True)
        self._warmup_frames = config.get("warmup_frames", 5)

        self._cap = None
        self._frame = None
        self._frame_id = 0
        self._lock = threading.Lock()
        self._running = False
        self._thread = None

    def open(self):
        """Open the camera.

        Raises:
            CameraError: the device could not be opened
        """
        backend_map = {
            "v4l2": cv2.CAP_V4L2,
            "dshow": cv2.CAP_DSHOW,
            "msmf": cv2.CAP_MSMF,
            "avfoundation": cv2.CAP_AVFOUNDATION,
            "auto": cv2.CAP_ANY,
        }
        backend = backend_map.get(self._backend, cv2.CAP_ANY)

        self._cap = cv2.VideoCapture(self._device_id, backend)
        if not self._cap.isOpened():
            self._cap.release()
            self._cap = None
            raise CameraError(
                f"Failed to open camera {self._device_id} (backend {self._backend}); "
                "check that it is connected and not used by another application")

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._cap.set(cv2.CAP_PROP_FPS, self._fps)
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        actual_fps = self._cap.get(cv2.CAP_PROP_FPS)
        logger.info(
            "Camera opened: %dx%d @ %.0f FPS (requested %dx%d @ %d)",
            actual_w, actual_h, actual_fps,
            self._width, self._height, self._fps,
        )
        self._width, self._height = actual_w or self._width, actual_h or self._height

        # Let auto-exposure stabilize
        for _ in range(self._warmup_frames):
            self._cap.read()

    def start_async(self):
        """Start threaded frame capture."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, name="camera", daemon=True)
        self._thread.start()
        logger.info("Async capture started")

    def _capture_loop(self):
        while self._running:
            ret, frame = self._cap.read()
            if ret and frame is not None:
                if self._flip_h:
                    frame = cv2.flip(frame, 1)
                with self._lock:
                    self._frame = frame
                    self._frame_id += 1
            else:
                time.sleep(0.005)

    def read(self):
        """Get the latest frame (non-blocking).

        Returns:
            tuple: (frame_id, numpy array) or (None, None) if no frame yet
        """
        with self._lock:
            if self._frame is not None:
                return self._frame_id, self._frame
            return None, None

    @property
    def resolution(self) -> tuple:
        return (self._width, self._height)

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def stop(self):
        """Stop async capture and release camera."""
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        if self._cap:
            self._cap.release()
            self._cap = None
        logger.info("Camera stopped")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.stop()
