"""
Gallery and export of Try-All snapshots.

The gallery keeps the ordered snapshots of the last run, a display focus,
and turns them into a single ZIP bundle (one ``<prefix><n>.png`` entry per
snapshot). Entry timestamps are fixed, so packaging an unchanged collection
twice yields identical bytes.

Sharing is delegated to an optional platform capability:

    share_capability(title=..., text=..., url=..., files=[...])

which may raise ``ShareCancelled`` when the user backs out. Without a
capability, ``share()`` reports UNSUPPORTED instead of failing.
"""

import io
import os
import logging
import threading
import zipfile
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from core.types import Snapshot
from core.events import EventBus, Events

logger = logging.getLogger(__name__)

# DOS epoch; zipfile cannot store anything earlier
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


class ShareCancelled(Exception):
    """Raised by a share capability when the user dismisses the share sheet."""


class ShareOutcome(Enum):
    SHARED = "shared"
    CANCELLED = "cancelled"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


def _compression() -> int:
    """DEFLATE when zlib is present, otherwise STORED with a warning."""
    try:
        import zlib  # noqa: F401
    except ImportError:
        logger.warning("zlib unavailable; writing an uncompressed bundle")
        return zipfile.ZIP_STORED
    return zipfile.ZIP_DEFLATED


class Gallery:
    """Ordered, read-only snapshot collection with packaging and sharing."""

    def __init__(self, config: dict = None,
                 share_capability: Optional[Callable[..., None]] = None,
                 event_bus: EventBus = None):
        config = config or {}
        self._prefix = config.get("entry_prefix", "Aurum_Look_")
        self._bundle_name = config.get("bundle_name", "My_Aurum_Collection.zip")
        self._output_dir = config.get("output_dir", "exports")
        share = config.get("share", {}) or {}
        self._share_title = share.get("title", "Aurum Atelier")
        self._share_text = share.get("text", "Check out my virtual jewelry looks!")
        self._share_url = share.get("url", "")
        self._share = share_capability
        self._bus = event_bus or EventBus()

        self._snapshots: Tuple[Snapshot, ...] = ()
        self._focus: Optional[int] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def populate(self, snapshots: Sequence[Snapshot]):
        """Replace the collection; focus falls back to the first snapshot."""
        with self._lock:
            self._snapshots = tuple(snapshots)
            self._focus = 0 if self._snapshots else None
        logger.info("Gallery populated with %d snapshots", len(self._snapshots))

    def list(self) -> Tuple[Snapshot, ...]:
        with self._lock:
            return self._snapshots

    def __len__(self):
        return len(self._snapshots)

    def select(self, index: int) -> Snapshot:
        """Move the display focus."""
        with self._lock:
            if not 0 <= index < len(self._snapshots):
                raise IndexError(f"No snapshot {index} (gallery has {len(self._snapshots)})")
            self._focus = index
            return self._snapshots[index]

    def step_focus(self, delta: int) -> Optional[Snapshot]:
        """Cycle the focus by ``delta``; None on an empty gallery."""
        with self._lock:
            if not self._snapshots:
                return None
            self._focus = ((self._focus or 0) + delta) % len(self._snapshots)
            return self._snapshots[self._focus]

    @property
    def focus_index(self) -> Optional[int]:
        return self._focus

    def focused(self) -> Optional[Snapshot]:
        with self._lock:
            if self._focus is None:
                return None
            return self._snapshots[self._focus]

    def clear(self):
        with self._lock:
            self._snapshots = ()
            self._focus = None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def entry_names(self) -> Tuple[str, ...]:
        return tuple(f"{self._prefix}{i + 1}.png" for i in range(len(self._snapshots)))

    def package(self) -> bytes:
        """Build the ZIP bundle of the current collection."""
        snapshots = self.list()
        compression = _compression()
        if compression == zipfile.ZIP_STORED:
            self._bus.emit(Events.EXPORT_WARNING,
                           message="Compression unavailable; bundle is uncompressed")
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=compression) as bundle:
            for i, snapshot in enumerate(snapshots):
                info = zipfile.ZipInfo(f"{self._prefix}{i + 1}.png", date_time=_FIXED_DATE_TIME)
                info.compress_type = compression
                info.external_attr = 0o644 << 16
                bundle.writestr(info, snapshot.png)
        logger.debug("Packaged %d snapshots (%d bytes)", len(snapshots), buffer.tell())
        return buffer.getvalue()

    def save_bundle(self, directory: str = None) -> str:
        """Write the bundle to ``directory`` and return its path."""
        if not self._snapshots:
            raise ValueError("Gallery is empty; nothing to export")
        directory = directory or self._output_dir
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, self._bundle_name)
        data = self.package()
        with open(path, "wb") as f:
            f.write(data)
        logger.info("Saved %s (%d looks)", path, len(self._snapshots))
        self._bus.emit(Events.BUNDLE_SAVED, path=path, count=len(self._snapshots))
        return path

    def share(self) -> ShareOutcome:
        """Hand the collection to the platform share capability, if any."""
        if self._share is None:
            logger.warning("Sharing is not supported here; use the download bundle instead")
            outcome = ShareOutcome.UNSUPPORTED
        else:
            try:
                self._share(
                    title=self._share_title,
                    text=self._share_text,
                    url=self._share_url,
                    files=list(self.entry_names()),
                )
                outcome = ShareOutcome.SHARED
            except ShareCancelled:
                logger.info("Share cancelled.")
                outcome = ShareOutcome.CANCELLED
            except Exception as e:
                logger.error("Share failed: %s", e)
                outcome = ShareOutcome.FAILED
        self._bus.emit(Events.SHARE_RESULT, outcome=outcome)
        return outcome
