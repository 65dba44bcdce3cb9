"""Tests for hierarchy helpers over structure rows."""

from conftest import make_config

from catalog_sync.sync.cache import StructureCache
from catalog_sync.sync.hierarchy import (
    ancestor_pairs,
    filter_linked_content,
    find_structure_entities,
    lineage,
    parent_path,
    path_ids,
    resource_ids,
    should_entity_exist_in_channel_nodes,
    target_entity_path,
    unique_by_entity_id,
)
from catalog_sync.sync.mapping import CatalogMapping
from catalog_sync.sync.models import StructureEntity


def _row(path, entity_type_id="Product", link_type_id=None):
    ids = [int(s) for s in path.split("/")]
    return StructureEntity(
        entity_id=ids[-1],
        parent_id=ids[-2] if len(ids) > 1 else 0,
        path=path,
        entity_type_id=entity_type_id,
        link_type_id_from_parent=link_type_id,
    )


def _cache(source):
    config = make_config()
    return StructureCache(
        source, config, CatalogMapping(config, source.get_all_link_types())
    )


class TestPaths:
    def test_path_ids(self):
        assert path_ids("1/10/30") == [1, 10, 30]
        assert path_ids("") == []

    def test_parent_path(self):
        assert parent_path("1/10/30") == "1/10"
        assert parent_path("1") == ""

    def test_ancestor_pairs_walk_upward(self):
        assert ancestor_pairs(_row("1/2/3/4")) == [(3, 2), (2, 1)]

    def test_ancestor_pairs_top_level(self):
        assert ancestor_pairs(_row("1/10")) == []

    def test_target_entity_path(self):
        rows = [_row("1/10/30"), _row("1/20/30")]
        assert target_entity_path(30, rows) == "1/10/30"
        assert target_entity_path(30, rows, parent_id=20) == "1/20/30"
        assert target_entity_path(31, rows) == ""


class TestRowFilters:
    def test_find_structure_entities(self):
        rows = [
            _row("1/10/30", link_type_id="ChannelNodeProducts"),
            _row("1/20/30", link_type_id="ChannelNodeProducts"),
            _row("1/10/30", link_type_id="Other"),
        ]
        found = find_structure_entities(rows, 10, 30, "ChannelNodeProducts")
        assert found == [rows[0]]

    def test_filter_linked_content(self, source):
        mapping = CatalogMapping(make_config(), source.get_all_link_types())
        rows = [
            _row("1/10/40", link_type_id="ChannelNodeProducts"),
            _row("1/10/40/41", link_type_id="ProductAccessories"),
            _row("1/10/40/42", link_type_id="ProductAccessories"),
            _row("1/20/42", link_type_id="ChannelNodeProducts"),
        ]
        kept = filter_linked_content(rows, mapping)
        assert [(r.entity_id, r.parent_id) for r in kept] == [
            (40, 10),
            (42, 40),
            (42, 20),
        ]

    def test_unique_by_entity_id_keeps_first(self):
        rows = [_row("1/10/30"), _row("1/20/30"), _row("1/20/31")]
        assert unique_by_entity_id(rows) == [rows[0], rows[2]]


class TestMembership:
    def test_membership_per_node(self, source):
        source.add_entity(30, "Item")
        source.add_row("1/20/30", "ChannelNodeItems")
        nodes = source.get_all_structure_entities_for_type(1, "ChannelNode")
        membership = should_entity_exist_in_channel_nodes(_cache(source), 30, nodes)
        assert membership == {"10": False, "20": True}

    def test_membership_one_entry_per_node(self, source):
        source.add_row("1/20/10", "ChannelNodeChannelNodes")
        nodes = source.get_all_structure_entities_for_type(1, "ChannelNode")
        membership = should_entity_exist_in_channel_nodes(_cache(source), 99, nodes)
        assert membership == {"10": False, "20": False}


class TestResourceIdsAndLineage:
    def test_resource_ids(self, source):
        source.add_entity(40, "Product")
        source.add_entity(41, "Product")
        source.add_entity(60, "Resource")
        source.link(40, 60, "ProductResource")
        source.link(40, 41, "ProductProduct")
        source.link(40, 60, "ProductResource", index=1)
        assert resource_ids(source.entities[40]) == [60]

    def test_lineage_root_first(self, source):
        source.add_entity(40, "Product")
        source.add_row("1/10/40", "ChannelNodeProducts")
        assert [e.id for e in lineage(_cache(source), 40)] == [1, 10, 40]

    def test_lineage_without_parent(self, source):
        assert lineage(_cache(source), -1) == []

    def test_lineage_skips_missing_ancestors(self, source):
        source.add_entity(40, "Product")
        source.add_row("1/10/40", "ChannelNodeProducts")
        source.entities.pop(10)
        assert [e.id for e in lineage(_cache(source), 40)] == [1, 40]
