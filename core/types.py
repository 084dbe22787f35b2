"""
Shared domain types for the Aurum Atelier try-on system.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

import time
from enum import Enum, IntEnum
from typing import NamedTuple, Optional, Sequence, Tuple


# =============================================================================
# Landmarks
# =============================================================================

class Landmark(NamedTuple):
    """A single landmark point with normalized coordinates."""
    x: float  # 0.0 to 1.0, normalized by image width
    y: float  # 0.0 to 1.0, normalized by image height
    z: float = 0.0

    def to_pixel(self, width: int, height: int) -> Tuple[float, float]:
        """Project to pixel space (sub-pixel precision kept for geometry)."""
        return (self.x * width, self.y * height)


LandmarkList = Sequence[Landmark]


class HandIndex(IntEnum):
    """Hand landmark indices used for swipe classification (MediaPipe convention)."""
    WRIST = 0
    INDEX_MCP = 5
    INDEX_TIP = 8


class FaceIndex(IntEnum):
    """Face mesh landmark indices used as jewelry anchors."""
    LEFT_EAR = 132
    RIGHT_EAR = 361
    CHIN = 152


class DetectorKind(Enum):
    """The two independent landmark detectors."""
    HAND = "hand"
    FACE = "face"


# =============================================================================
# Catalog / Navigation Types
# =============================================================================

class Kind(Enum):
    """Jewelry placement kind; decides overlay geometry."""
    EARRING = "earring"
    NECKLACE = "necklace"

    @classmethod
    def from_string(cls, name: str) -> 'Kind':
        try:
            return cls(name.lower().rstrip("s"))
        except ValueError:
            raise ValueError(f"Unknown jewelry kind: {name!r}")

    @classmethod
    def infer(cls, category_id: str) -> 'Kind':
        """Derive the kind from a category name ("gold_earrings" -> EARRING)."""
        return cls.EARRING if "earring" in category_id.lower() else cls.NECKLACE


class Direction(IntEnum):
    """Navigation step applied to the active asset index."""
    LEFT = -1
    RIGHT = 1


class AssetStatus(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class SequencerStatus(Enum):
    """Try-All sequencer states."""
    IDLE = "idle"
    RUNNING = "running"
    IDLE_WITH_RESULTS = "idle_with_results"


# =============================================================================
# Data Containers
# =============================================================================

class GestureOutcome:
    """Result of classifying one hand-detector result.

    Uses __slots__ since one is created per hand callback.
    """

    __slots__ = ("detected", "candidate", "accepted", "timestamp")

    def __init__(self, detected: bool, candidate: Optional[Direction] = None,
                 accepted: bool = False):
        self.detected = detected
        self.candidate = candidate
        self.accepted = accepted
        self.timestamp = time.time()

    @property
    def direction(self) -> Optional[Direction]:
        """The navigation event, only when it was accepted."""
        return self.candidate if self.accepted else None

    def __repr__(self):
        name = self.candidate.name if self.candidate is not None else "none"
        return f"GestureOutcome(detected={self.detected}, {name}, accepted={self.accepted})"


class Snapshot:
    """An immutable PNG still of one composited frame."""

    __slots__ = ("_png", "_index", "_label", "_timestamp")

    def __init__(self, png: bytes, index: int, label: str = "",
                 timestamp: Optional[float] = None):
        object.__setattr__(self, "_png", bytes(png))
        object.__setattr__(self, "_index", index)
        object.__setattr__(self, "_label", label)
        object.__setattr__(self, "_timestamp", time.time() if timestamp is None else timestamp)

    def __setattr__(self, name, value):
        raise AttributeError("Snapshot is immutable")

    @property
    def png(self) -> bytes:
        return self._png

    @property
    def index(self) -> int:
        return self._index

    @property
    def label(self) -> str:
        return self._label

    @property
    def timestamp(self) -> float:
        return self._timestamp

    def __len__(self):
        return len(self._png)

    def __repr__(self):
        return f"Snapshot(#{self._index}, {self._label or '-'}, {len(self._png)} bytes)"
