"""
Tests for Catalog and Navigation State
=======================================
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import AssetStatus, Direction, Kind
from core.events import EventBus, Events
from modules.catalog.assets import AssetCatalog, Category
from modules.catalog.navigation import NavigationState


CATEGORIES = {
    "gold_earrings": {"kind": "earring", "count": 5},
    "gold_necklaces": {"kind": "necklace", "count": 5},
    "diamond_earrings": {"kind": "earring", "count": 5},
    "diamond_necklaces": {"kind": "necklace", "count": 6},
    "empty_necklaces": {"kind": "necklace", "count": 0},
}


class CountingReader:
    """Image reader that records every path it decodes."""

    def __init__(self, missing=()):
        self.paths = []
        self._missing = set(missing)

    def __call__(self, path):
        self.paths.append(path)
        if any(path.endswith(m) for m in self._missing):
            return None
        return np.full((20, 10, 4), 200, np.uint8)


@pytest.fixture
def bus():
    bus = EventBus()
    bus.reset()
    yield bus
    bus.reset()


@pytest.fixture
def reader():
    return CountingReader()


@pytest.fixture
def catalog(reader):
    return AssetCatalog(
        {"asset_root": "jewelry", "background_loading": False, "categories": CATEGORIES},
        image_reader=reader,
    )


@pytest.fixture
def nav(catalog, bus):
    return NavigationState(catalog, event_bus=bus)


def index_of(nav, kind):
    asset = nav.active(kind)
    return None if asset is None else asset.index


class TestCatalog:
    """Test suite for the asset catalog."""

    def test_categories_in_config_order(self, catalog):
        assert [c.id for c in catalog.categories] == list(CATEGORIES)

    def test_category_from_bare_count(self):
        category = Category.from_config("silver_earrings", 3)
        assert category.kind is Kind.EARRING
        assert category.count == 3

    def test_unknown_category(self, catalog):
        with pytest.raises(KeyError):
            catalog.category("platinum_rings")

    def test_asset_paths_are_one_based(self, catalog):
        assets = catalog.preload("gold_earrings")
        assert assets[0].path.replace("\\", "/") == "jewelry/gold_earrings/1.png"
        assert assets[4].path.replace("\\", "/") == "jewelry/gold_earrings/5.png"

    def test_not_loaded_until_requested(self, catalog, reader):
        assert not catalog.is_loaded("gold_earrings")
        assert catalog.assets("gold_earrings") == []
        assert reader.paths == []

    def test_preload_is_idempotent(self, catalog, reader):
        first = catalog.preload("diamond_necklaces")
        second = catalog.preload("diamond_necklaces")

        assert first == second
        assert len(reader.paths) == 6

    def test_failed_asset(self):
        reader = CountingReader(missing=["2.png"])
        catalog = AssetCatalog({"background_loading": False, "categories": CATEGORIES},
                               image_reader=reader)
        assets = catalog.preload("gold_earrings")

        assert assets[1].status is AssetStatus.FAILED
        assert not assets[1].ready
        assert assets[0].ready
        assert (assets[0].width, assets[0].height) == (10, 20)

    def test_reader_exception_marks_failed(self):
        def broken(path):
            raise IOError("disk gone")

        catalog = AssetCatalog({"background_loading": False, "categories": CATEGORIES},
                               image_reader=broken)
        assets = catalog.preload("gold_earrings")
        assert all(a.status is AssetStatus.FAILED for a in assets)

    def test_asset_label(self, catalog):
        assert catalog.preload("gold_necklaces")[2].label == "gold_necklaces/3"


class TestNavigation:
    """Test suite for category selection and cyclic navigation."""

    def test_initial_state(self, nav):
        assert nav.current_category is None
        assert nav.active(Kind.EARRING) is None
        assert nav.active(Kind.NECKLACE) is None
        assert nav.current_assets() == []

    def test_navigate_without_category(self, nav):
        assert not nav.navigate(Direction.RIGHT)

    def test_navigate_empty_list(self, nav):
        nav.select_category("empty_necklaces")
        assert not nav.navigate(Direction.RIGHT)
        assert nav.active(Kind.NECKLACE) is None

    def test_cyclic_forward(self, nav):
        nav.select_category("gold_earrings")
        visited = []
        for _ in range(7):
            nav.navigate(Direction.RIGHT)
            visited.append(index_of(nav, Kind.EARRING))
        assert visited == [0, 1, 2, 3, 4, 0, 1]

    def test_cyclic_backward(self, nav):
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        nav.navigate(Direction.LEFT)
        assert index_of(nav, Kind.EARRING) == 4

    def test_options(self, nav):
        nav.select_category("gold_earrings")
        options = nav.options()
        assert options[0] == ("gold_earrings", 0, True)
        assert len(options) == 5

    def test_reselect_does_not_reload(self, nav, reader):
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        nav.navigate(Direction.RIGHT)
        nav.select_category("gold_earrings")

        assert len(reader.paths) == 5
        # Pointer still refers to an asset of the list, so it is kept
        assert index_of(nav, Kind.EARRING) == 1

    def test_same_kind_switch_clears_stale_pointer(self, nav):
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        nav.select_category("diamond_earrings")

        assert nav.active(Kind.EARRING) is None
        nav.navigate(Direction.RIGHT)
        assert nav.active(Kind.EARRING).category.id == "diamond_earrings"

    def test_other_kind_survives_switch(self, nav):
        nav.select_category("gold_necklaces")
        nav.navigate(Direction.RIGHT)
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)

        active = nav.active_assets()
        assert active[Kind.NECKLACE].label == "gold_necklaces/1"
        assert active[Kind.EARRING].label == "gold_earrings/1"

    def test_navigate_only_touches_current_kind(self, nav):
        nav.select_category("gold_necklaces")
        nav.navigate(Direction.RIGHT)
        nav.select_category("gold_earrings")
        nav.navigate(Direction.LEFT)
        assert index_of(nav, Kind.NECKLACE) == 0

    def test_select_asset(self, nav):
        assert nav.select_asset("diamond_necklaces", 5)
        assert nav.active(Kind.NECKLACE).label == "diamond_necklaces/6"

    def test_select_asset_out_of_range(self, nav):
        with pytest.raises(IndexError):
            nav.select_asset("gold_earrings", 5)

    def test_unknown_category(self, nav):
        with pytest.raises(KeyError):
            nav.select_category("nose_rings")
        assert nav.current_category is None

    def test_events(self, nav, bus):
        seen = []
        bus.subscribe(Events.CATEGORY_SELECTED, lambda category, **kw: seen.append(category.id))
        bus.subscribe(Events.ASSET_SELECTED, lambda asset, source, **kw: seen.append(source))
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        assert seen == ["gold_earrings", "navigation"]

    def test_clear(self, nav):
        nav.select_category("gold_earrings")
        nav.navigate(Direction.RIGHT)
        nav.clear(Kind.EARRING)
        assert nav.active(Kind.EARRING) is None


class TestExclusiveAccess:
    """Test suite for the Try-All exclusive mutation path."""

    def test_requires_category(self, nav):
        with pytest.raises(RuntimeError):
            nav.begin_exclusive()

    def test_single_holder(self, nav):
        nav.select_category("gold_earrings")
        nav.begin_exclusive()
        with pytest.raises(RuntimeError):
            nav.begin_exclusive()

    def test_locked_kind_is_inert(self, nav):
        nav.select_category("gold_earrings")
        token = nav.begin_exclusive()
        nav.assign_exclusive(token, 2)

        assert nav.is_locked(Kind.EARRING)
        assert not nav.navigate(Direction.RIGHT)
        assert not nav.select_asset("gold_earrings", 0)
        nav.clear(Kind.EARRING)
        assert index_of(nav, Kind.EARRING) == 2

    def test_other_kind_stays_writable(self, nav):
        nav.select_category("gold_earrings")
        nav.begin_exclusive()
        assert not nav.is_locked(Kind.NECKLACE)
        assert nav.select_asset("gold_necklaces", 1)

    def test_same_kind_switch_ignored_while_locked(self, nav):
        nav.select_category("gold_earrings")
        token = nav.begin_exclusive()
        nav.assign_exclusive(token, 1)

        assert nav.select_category("diamond_earrings").id == "gold_earrings"
        assert nav.current_category.id == "gold_earrings"
        assert not nav.catalog.is_loaded("diamond_earrings")

        nav.end_exclusive(token)
        active = nav.active(Kind.EARRING)
        assert active is None or active in nav.current_assets()

    def test_other_kind_switch_allowed_while_locked(self, nav):
        nav.select_category("gold_earrings")
        nav.begin_exclusive()
        assert nav.select_category("gold_necklaces").id == "gold_necklaces"
        assert nav.current_category.id == "gold_necklaces"

    def test_reselect_locked_category(self, nav):
        nav.select_category("gold_earrings")
        token = nav.begin_exclusive()
        nav.assign_exclusive(token, 3)
        nav.select_category("gold_earrings")
        assert index_of(nav, Kind.EARRING) == 3

    def test_end_releases(self, nav):
        nav.select_category("gold_earrings")
        token = nav.begin_exclusive()
        nav.assign_exclusive(token, 3)
        nav.end_exclusive(token)

        assert not nav.is_locked(Kind.EARRING)
        assert nav.navigate(Direction.RIGHT)
        assert index_of(nav, Kind.EARRING) == 4

    def test_stale_token_rejected(self, nav):
        nav.select_category("gold_earrings")
        token = nav.begin_exclusive()
        nav.end_exclusive(token)
        with pytest.raises(RuntimeError):
            nav.assign_exclusive(token, 0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
