"""Tests for the per-operation StructureCache.

Covers:
- Entity memoization and load-level upgrades
- flush_cache() forcing fresh reads
- Structure row lookups and association-only filtering
- Resource locations loaded once per operation
- Parent product memoization
- Parent structure row resolution
"""

from conftest import FakeSource, make_config

from catalog_sync.sync.cache import StructureCache
from catalog_sync.sync.mapping import CatalogMapping
from catalog_sync.sync.models import LoadLevel


def _cache(source: FakeSource, **overrides) -> StructureCache:
    config = make_config(**overrides)
    return StructureCache(
        source, config, CatalogMapping(config, source.get_all_link_types())
    )


class TestEntityCache:
    def test_second_fetch_is_cache_hit(self, source):
        cache = _cache(source)
        first = cache.get_entity(10, LoadLevel.DATA_ONLY)
        second = cache.get_entity(10, LoadLevel.DATA_ONLY)
        assert first is second
        assert source.fetches[10] == 1

    def test_lower_level_served_from_richer_copy(self, source):
        cache = _cache(source)
        cache.get_entity(10, LoadLevel.DATA_AND_LINKS)
        entity = cache.get_entity(10, LoadLevel.SHALLOW)
        assert entity.load_level == LoadLevel.DATA_AND_LINKS
        assert source.fetches[10] == 1

    def test_higher_level_refetches(self, source):
        cache = _cache(source)
        cache.get_entity(10, LoadLevel.DATA_ONLY)
        entity = cache.get_entity(10, LoadLevel.DATA_AND_LINKS)
        assert entity.load_level == LoadLevel.DATA_AND_LINKS
        assert source.fetches[10] == 2

    def test_flush_then_get_refetches(self, source):
        cache = _cache(source)
        cache.get_entity(10, LoadLevel.DATA_ONLY)
        cache.flush_cache()
        cache.get_entity(10, LoadLevel.DATA_ONLY)
        assert source.fetches[10] == 2

    def test_missing_entity_is_none_and_not_cached(self, source):
        cache = _cache(source)
        assert cache.get_entity(999, LoadLevel.DATA_ONLY) is None
        assert cache.get_entity(999, LoadLevel.DATA_ONLY) is None
        assert source.fetches[999] == 2


class TestStructureRows:
    def test_rows_for_type_cached(self, source):
        cache = _cache(source)
        rows = cache.get_structure_entities_for_type("ChannelNode")
        source.rows = []
        assert cache.get_structure_entities_for_type("ChannelNode") == rows
        assert [r.entity_id for r in rows] == [10, 20]

    def test_rows_for_entity_cached_until_flush(self, source):
        cache = _cache(source)
        assert len(cache.get_structure_entities_for_entity(10)) == 1
        source.remove_rows(10)
        assert len(cache.get_structure_entities_for_entity(10)) == 1
        cache.flush_cache()
        assert cache.get_structure_entities_for_entity(10) == []

    def _with_accessory(self, source):
        source.add_entity(40, "Product")
        source.add_entity(41, "Product")
        source.add_row("1/10/40", "ChannelNodeProducts")
        # 41 only hangs below 40 through an association
        source.add_row("1/10/40/41", "ProductAccessories")

    def test_association_only_rows_dropped(self, source):
        self._with_accessory(source)
        cache = _cache(source)
        ids = [r.entity_id for r in cache.get_all_structure_entities(["Product"])]
        assert ids == [40]

    def test_force_include_linked_content_keeps_them(self, source):
        self._with_accessory(source)
        cache = _cache(source, force_include_linked_content=True)
        ids = [r.entity_id for r in cache.get_all_structure_entities(["Product"])]
        assert ids == [40, 41]

    def test_children_and_subtree(self, source):
        source.add_entity(11, "ChannelNode")
        source.add_entity(30, "Item")
        source.add_row("1/10/11", "ChannelNodeChannelNodes")
        source.add_row("1/10/11/30", "ChannelNodeItems")
        cache = _cache(source)
        children = cache.get_children_entities_in_channel(10, "1/10")
        assert [r.entity_id for r in children] == [11]
        subtree = cache.get_structure_entities_from_path("1/10")
        assert [r.entity_id for r in subtree] == [10, 11, 30]
        assert cache.get_children_entities_in_channel(10, "") == []
        assert cache.get_structure_entities_from_path("") == []

    def test_parent_structure_entity(self, source):
        source.add_entity(30, "Item")
        source.add_row("1/10/30", "ChannelNodeItems")
        source.add_row("1/20/30", "ChannelNodeItems")
        cache = _cache(source)
        rows = cache.get_entity_in_channel_with_parent(30, 20)
        parent = cache.get_parent_structure_entity(20, 30, rows)
        assert parent.path == "1/20"

    def test_parent_structure_entity_missing_target(self, source):
        cache = _cache(source)
        assert cache.get_parent_structure_entity(20, 30, []) is None


class TestResourcesAndParents:
    def test_resource_locations_loaded_once(self, source, monkeypatch):
        source.add_entity(40, "Product")
        source.add_entity(41, "Product")
        source.add_entity(60, "Resource")
        source.add_row("1/10/40", "ChannelNodeProducts")
        source.add_row("1/10/41", "ChannelNodeProducts")
        source.add_row("1/10/40/60", "ProductResource")
        source.add_row("1/10/41/60", "ProductResource")

        calls = []
        original = source.get_all_structure_entities_for_type

        def counting(channel_id, entity_type_id):
            calls.append(entity_type_id)
            return original(channel_id, entity_type_id)

        monkeypatch.setattr(source, "get_all_structure_entities_for_type", counting)
        cache = _cache(source)
        locations = cache.get_resource_locations(60)
        assert [r.parent_id for r in locations] == [40, 41]
        assert cache.get_resource_locations(61) == []
        assert calls == ["Resource"]

    def test_parent_product_memoized(self, source):
        source.add_entity(40, "Product")
        source.add_entity(30, "Item")
        source.link(40, 30, "ProductItem")
        row = source.add_row("1/10/40/30", "ProductItem")
        cache = _cache(source)
        assert cache.get_parent_product(row).id == 40
        source.entities.pop(40)
        assert cache.get_parent_product(row).id == 40

    def test_parent_product_ignores_associations(self, source):
        source.add_entity(40, "Product")
        source.add_entity(41, "Product")
        source.link(40, 41, "ProductAccessories")
        row = source.add_row("1/10/41", "ChannelNodeProducts")
        assert _cache(source).get_parent_product(row) is None
