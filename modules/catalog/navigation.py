"""
Navigation & catalog state: the single owner of "what is being worn".

Holds the current category and the two active-asset slots (one per kind).
Every writer goes through the typed operations below:

    gesture engine   -> navigate()
    user selection   -> select_category(), select_asset()
    Try-All          -> begin_exclusive() / assign_exclusive() / end_exclusive()

While the sequencer holds exclusivity for a kind, the first two paths are
inert for that kind. Detector callbacks and sequencer timers arrive on
worker threads, so every read-modify-write happens under ``lock``.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from core.types import Direction, Kind
from core.events import EventBus, Events
from modules.catalog.assets import Asset, AssetCatalog, Category

logger = logging.getLogger(__name__)


class ExclusiveToken:
    """Proof of exclusive mutation rights over one kind's slot."""

    __slots__ = ("kind", "category", "_valid")

    def __init__(self, kind: Kind, category: Category):
        self.kind = kind
        self.category = category
        self._valid = True

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self):
        self._valid = False


class NavigationState:
    """Current category plus the earring and necklace slots."""

    def __init__(self, catalog: AssetCatalog, event_bus: EventBus = None):
        self._catalog = catalog
        self._bus = event_bus or EventBus()
        self.lock = threading.RLock()

        self._current: Optional[Category] = None
        self._active: Dict[Kind, Optional[Asset]] = {kind: None for kind in Kind}
        self._exclusive: Optional[ExclusiveToken] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> AssetCatalog:
        return self._catalog

    @property
    def current_category(self) -> Optional[Category]:
        return self._current

    def active(self, kind: Kind) -> Optional[Asset]:
        with self.lock:
            return self._active[kind]

    def active_assets(self) -> Dict[Kind, Optional[Asset]]:
        """Snapshot of both slots, taken atomically."""
        with self.lock:
            return dict(self._active)

    def current_assets(self) -> List[Asset]:
        """Asset list of the current category (empty if none selected)."""
        with self.lock:
            if self._current is None:
                return []
            return self._catalog.assets(self._current.id)

    def options(self) -> List[Tuple[str, int, bool]]:
        """(category, index, ready) for every asset of the current category."""
        return [(a.category.id, a.index, a.ready) for a in self.current_assets()]

    def is_locked(self, kind: Kind) -> bool:
        with self.lock:
            return self._exclusive is not None and self._exclusive.kind is kind

    # ------------------------------------------------------------------
    # User / gesture operations
    # ------------------------------------------------------------------

    def select_category(self, category_id: str) -> Category:
        """Make ``category_id`` current and start loading its assets.

        Re-selecting a category is valid; its load is not repeated. A slot of
        the category's own kind that points outside the new list is cleared,
        the other kind's slot is left alone. While Try-All holds the kind,
        switching to another category of that kind is ignored and the
        current category is returned unchanged.
        """
        category = self._catalog.category(category_id)
        with self.lock:
            if self.is_locked(category.kind) and self._exclusive.category != category:
                logger.info("Category %s ignored while Try-All is running", category.id)
                return self._current
        assets = self._catalog.preload(category_id)
        with self.lock:
            self._current = category
            current = self._active[category.kind]
            if current is not None and current not in assets:
                self._active[category.kind] = None
        logger.info("Category selected: %s (%s, %d assets)",
                    category.id, category.kind.value, category.count)
        self._bus.emit(Events.CATEGORY_SELECTED, category=category)
        return category

    def select_asset(self, category_id: str, index: int) -> bool:
        """Explicitly wear ``list[index]`` of a category."""
        category = self._catalog.category(category_id)
        assets = self._catalog.assets(category_id)
        if not assets:
            assets = self._catalog.preload(category_id)
        if not 0 <= index < len(assets):
            raise IndexError(f"{category_id} has no asset {index}")
        with self.lock:
            if self.is_locked(category.kind):
                logger.info("Selection ignored while Try-All is running")
                return False
            self._active[category.kind] = assets[index]
        self._bus.emit(Events.ASSET_SELECTED, asset=assets[index], source="selection")
        return True

    def navigate(self, direction: int) -> bool:
        """Step the current category's slot cyclically by ``direction``.

        No-op (returns False) without a current category, with an empty
        list, or while the slot is held by Try-All.
        """
        with self.lock:
            if self._current is None:
                return False
            assets = self._catalog.assets(self._current.id)
            if not assets:
                return False
            kind = self._current.kind
            if self.is_locked(kind):
                return False

            current = self._active[kind]
            idx = assets.index(current) if current in assets else -1
            step = int(direction)
            next_idx = (idx + step + len(assets)) % len(assets)
            self._active[kind] = assets[next_idx]
            selected = assets[next_idx]

        logger.debug("Navigate %+d -> %s", step, selected.label)
        self._bus.emit(Events.ASSET_SELECTED, asset=selected, source="navigation")
        return True

    # ------------------------------------------------------------------
    # Try-All exclusive path
    # ------------------------------------------------------------------

    def begin_exclusive(self) -> ExclusiveToken:
        """Grant exclusive rights over the current category's kind."""
        with self.lock:
            if self._current is None:
                raise RuntimeError("No category selected")
            if self._exclusive is not None:
                raise RuntimeError("Exclusive access already held")
            self._exclusive = ExclusiveToken(self._current.kind, self._current)
            return self._exclusive

    def assign_exclusive(self, token: ExclusiveToken, index: int) -> Asset:
        """Wear ``list[index]`` of the token's category."""
        with self.lock:
            if not token.valid or token is not self._exclusive:
                raise RuntimeError("Stale exclusive token")
            assets = self._catalog.assets(token.category.id)
            asset = assets[index % len(assets)]
            self._active[token.kind] = asset
        self._bus.emit(Events.ASSET_SELECTED, asset=asset, source="tryall")
        return asset

    def end_exclusive(self, token: ExclusiveToken):
        with self.lock:
            if token is self._exclusive:
                self._exclusive = None
            token.invalidate()

    def clear(self, kind: Optional[Kind] = None):
        """Take off one kind (or everything) unless held by Try-All."""
        with self.lock:
            kinds = [kind] if kind is not None else list(Kind)
            for k in kinds:
                if not self.is_locked(k):
                    self._active[k] = None
