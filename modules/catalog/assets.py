"""
Jewelry catalog: category definitions and lazily loaded asset images.

Assets live at ``<asset_root>/<category>/<n>.<ext>`` with ``n`` counting
from 1. Each category's asset list is created on first request and never
evicted; the images themselves are decoded in the background so the frame
loop never waits on disk.
"""

import os
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import cv2
import numpy as np

from core.types import AssetStatus, Kind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Category:
    """A catalog category: fixed kind and asset count."""
    id: str
    kind: Kind
    count: int

    @classmethod
    def from_config(cls, category_id: str, entry) -> "Category":
        """Build from a config entry: either ``{kind, count}`` or a bare count."""
        if isinstance(entry, dict):
            kind_name = entry.get("kind")
            kind = Kind.from_string(kind_name) if kind_name else Kind.infer(category_id)
            count = int(entry.get("count", 0))
        else:
            kind = Kind.infer(category_id)
            count = int(entry)
        return cls(id=category_id, kind=kind, count=count)


def read_rgba(path: str) -> Optional[np.ndarray]:
    """Read an image as BGRA; opaque images get a solid alpha channel."""
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        return None
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA)
    elif img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
    return img


class Asset:
    """Opaque, lazily loaded jewelry image handle."""

    def __init__(self, category: Category, index: int, path: str):
        self.category = category
        self.index = index  # 0-based position in the category list
        self.path = path
        self._image: Optional[np.ndarray] = None
        self._status = AssetStatus.PENDING
        self._lock = threading.Lock()

    def resolve(self, image: Optional[np.ndarray]):
        """Complete the load with a decoded image, or mark it failed."""
        with self._lock:
            if image is None or image.size == 0:
                self._status = AssetStatus.FAILED
                self._image = None
            else:
                self._image = image
                self._status = AssetStatus.READY

    @property
    def ready(self) -> bool:
        return self._status is AssetStatus.READY

    @property
    def status(self) -> AssetStatus:
        return self._status

    @property
    def image(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._image

    @property
    def width(self) -> int:
        image = self.image
        return 0 if image is None else image.shape[1]

    @property
    def height(self) -> int:
        image = self.image
        return 0 if image is None else image.shape[0]

    @property
    def label(self) -> str:
        return f"{self.category.id}/{self.index + 1}"

    def __repr__(self):
        return f"Asset({self.label}, {self._status.value})"


class AssetCatalog:
    """Category table plus a never-evicted, per-category asset cache."""

    def __init__(self, config: dict, image_reader: Callable[[str], Optional[np.ndarray]] = None,
                 base_dir: str = ""):
        self._root = config.get("asset_root", "assets")
        if base_dir and not os.path.isabs(self._root):
            self._root = os.path.join(base_dir, self._root)
        self._extension = config.get("extension", "png")
        self._background = config.get("background_loading", True)
        self._reader = image_reader or read_rgba

        self._categories: Dict[str, Category] = {}
        for category_id, entry in (config.get("categories") or {}).items():
            self._categories[category_id] = Category.from_config(category_id, entry)

        self._cache: Dict[str, List[Asset]] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self._background:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="asset-loader")

        logger.info("Catalog: %d categories under %s",
                    len(self._categories), self._root)

    @property
    def categories(self) -> List[Category]:
        """Categories in configuration order."""
        return list(self._categories.values())

    def category(self, category_id: str) -> Category:
        try:
            return self._categories[category_id]
        except KeyError:
            raise KeyError(f"Unknown category: {category_id!r}") from None

    def asset_path(self, category: Category, index: int) -> str:
        return os.path.join(self._root, category.id, f"{index + 1}.{self._extension}")

    def is_loaded(self, category_id: str) -> bool:
        with self._lock:
            return category_id in self._cache

    def assets(self, category_id: str) -> List[Asset]:
        """The category's asset list, or an empty list if never requested."""
        with self._lock:
            return list(self._cache.get(category_id, ()))

    def preload(self, category_id: str) -> List[Asset]:
        """Create the category's asset handles and start decoding them.

        Idempotent: a second call returns the cached list without reloading.
        """
        category = self.category(category_id)
        with self._lock:
            cached = self._cache.get(category_id)
            if cached is not None:
                return list(cached)
            assets = [Asset(category, i, self.asset_path(category, i))
                      for i in range(category.count)]
            self._cache[category_id] = assets

        logger.info("Loading %d assets for '%s'", len(assets), category_id)
        for asset in assets:
            if self._executor is not None:
                self._executor.submit(self._load, asset)
            else:
                self._load(asset)
        return list(assets)

    def _load(self, asset: Asset):
        try:
            image = self._reader(asset.path)
        except Exception as e:
            logger.warning("Failed to decode %s: %s", asset.path, e)
            image = None
        asset.resolve(image)
        if not asset.ready:
            logger.warning("Asset unavailable: %s", asset.path)
        else:
            logger.debug("Asset ready: %s (%dx%d)", asset.label, asset.width, asset.height)

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
