"""
MediaPipe Hands / Face Mesh wrappers.

Both detectors expose the same callable shape used by the stream adapter:
``detect(bgr_frame) -> [landmarks, ...]`` where each entry is a list of
normalized ``Landmark`` points for one hand or one face. An empty list
means nothing was detected in that frame.
"""

import logging
from typing import List

import cv2
import numpy as np
import mediapipe as mp

from core.types import Landmark, LandmarkList

logger = logging.getLogger(__name__)


def _to_landmarks(normalized_landmark_list) -> List[Landmark]:
    return [Landmark(lm.x, lm.y, lm.z) for lm in normalized_landmark_list.landmark]


class _MediaPipeDetector:
    """Lazy initialization, RGB conversion and context management."""

    name = "detector"

    def __init__(self):
        self._solution = None
        self._initialized = False

    def _create(self):
        raise NotImplementedError

    def _extract(self, results) -> List[LandmarkList]:
        raise NotImplementedError

    def initialize(self):
        self._solution = self._create()
        self._initialized = True

    def __call__(self, bgr_frame: np.ndarray) -> List[LandmarkList]:
        return self.detect(bgr_frame)

    def detect(self, bgr_frame: np.ndarray) -> List[LandmarkList]:
        """Run detection on a BGR frame.

        Returns:
            One landmark list per detected hand/face (possibly empty)
        """
        if not self._initialized:
            self.initialize()

        rgb_frame = cv2.cvtColor(bgr_frame, cv2.COLOR_BGR2RGB)
        # Set frame as non-writable for performance
        rgb_frame.flags.writeable = False
        results = self._solution.process(rgb_frame)
        return self._extract(results)

    def close(self):
        """Release MediaPipe resources."""
        if self._solution:
            self._solution.close()
            self._solution = None
            self._initialized = False
            logger.info("MediaPipe %s closed", self.name)

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()


class HandDetector(_MediaPipeDetector):
    """MediaPipe Hands configured for a single, fast hand."""

    name = "Hands"

    def __init__(self, config: dict = None):
        super().__init__()
        config = config or {}
        self._model_complexity = config.get("model_complexity", 0)
        self._max_hands = config.get("max_num_hands", 1)
        self._min_detect_conf = config.get("min_detection_confidence", 0.5)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

    def _create(self):
        hands = mp.solutions.hands.Hands(
            static_image_mode=False,
            model_complexity=self._model_complexity,
            max_num_hands=self._max_hands,
            min_detection_confidence=self._min_detect_conf,
            min_tracking_confidence=self._min_track_conf,
        )
        logger.info(
            "MediaPipe Hands initialized (complexity=%d, max_hands=%d, "
            "detect_conf=%.2f, track_conf=%.2f)",
            self._model_complexity, self._max_hands,
            self._min_detect_conf, self._min_track_conf,
        )
        return hands

    def _extract(self, results) -> List[LandmarkList]:
        if results and results.multi_hand_landmarks:
            return [_to_landmarks(hand) for hand in results.multi_hand_landmarks]
        return []


class FaceMeshDetector(_MediaPipeDetector):
    """MediaPipe Face Mesh with refined landmarks (ear/chin anchors)."""

    name = "FaceMesh"

    def __init__(self, config: dict = None):
        super().__init__()
        config = config or {}
        self._max_faces = config.get("max_num_faces", 1)
        self._refine = config.get("refine_landmarks", True)
        self._min_detect_conf = config.get("min_detection_confidence", 0.5)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

    def _create(self):
        face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=False,
            max_num_faces=self._max_faces,
            refine_landmarks=self._refine,
            min_detection_confidence=self._min_detect_conf,
            min_tracking_confidence=self._min_track_conf,
        )
        logger.info(
            "MediaPipe FaceMesh initialized (max_faces=%d, refine=%s, "
            "detect_conf=%.2f, track_conf=%.2f)",
            self._max_faces, self._refine,
            self._min_detect_conf, self._min_track_conf,
        )
        return face_mesh

    def _extract(self, results) -> List[LandmarkList]:
        if results and results.multi_face_landmarks:
            return [_to_landmarks(face) for face in results.multi_face_landmarks]
        return []
