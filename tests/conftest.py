"""Shared pytest fixtures for catalog-sync tests.

Provides in-memory stand-ins for the two external systems:

- ``FakeSource``: a source model (entities, links, structure rows) that
  counts entity fetches.
- ``FakeCatalogClient``: a target that records every call and accepts
  everything unless told otherwise.

plus a small standard channel used by most engine tests::

    1 Channel
    +-- 10 ChannelNode "Shoes"
    +-- 20 ChannelNode "Boots"
"""

from collections import Counter
from typing import Any

import pytest

from catalog_sync.config import Config
from catalog_sync.sync.cache import StructureCache
from catalog_sync.sync.context import OperationContext
from catalog_sync.sync.mapping import CatalogMapping
from catalog_sync.sync.models import (
    Entity,
    EntityRef,
    Field,
    Link,
    LinkType,
    LoadLevel,
    StructureEntity,
)

CHANNEL_ID = 1

LINK_TYPES = [
    LinkType(
        id="ChannelChannelNodes",
        source_entity_type_id="Channel",
        target_entity_type_id="ChannelNode",
        index=0,
    ),
    LinkType(
        id="ChannelNodeChannelNodes",
        source_entity_type_id="ChannelNode",
        target_entity_type_id="ChannelNode",
        index=1,
    ),
    LinkType(
        id="ChannelNodeProducts",
        source_entity_type_id="ChannelNode",
        target_entity_type_id="Product",
        index=2,
    ),
    LinkType(
        id="ChannelNodeItems",
        source_entity_type_id="ChannelNode",
        target_entity_type_id="Item",
        index=3,
    ),
    LinkType(
        id="ProductItem",
        source_entity_type_id="Product",
        target_entity_type_id="Item",
        index=4,
    ),
    LinkType(
        id="ProductProduct",
        source_entity_type_id="Product",
        target_entity_type_id="Product",
        index=5,
    ),
    LinkType(
        id="ProductAccessories",
        source_entity_type_id="Product",
        target_entity_type_id="Product",
        index=6,
        link_entity_type_id="AccessoryLink",
    ),
    LinkType(
        id="ProductResource",
        source_entity_type_id="Product",
        target_entity_type_id="Resource",
        index=7,
    ),
    LinkType(
        id="ItemResource",
        source_entity_type_id="Item",
        target_entity_type_id="Resource",
        index=8,
    ),
]


class FakeSource:
    """In-memory source model implementing ``SourceService``."""

    def __init__(self, link_types: list[LinkType] | None = None):
        self.entities: dict[int, Entity] = {}
        self.rows: list[StructureEntity] = []
        self.link_types = list(LINK_TYPES if link_types is None else link_types)
        self.fields: dict[tuple[int, str], Field] = {}
        self.history: dict[tuple[int, str], list[Field]] = {}
        self.link_entity_links: dict[int, list[Link]] = {}
        self.fetches: Counter = Counter()
        self.failing: set[int] = set()

    # -- building -------------------------------------------------------

    def add_entity(
        self,
        entity_id: int,
        entity_type_id: str,
        name: str | None = None,
        fields: dict[str, Any] | None = None,
        is_link_entity_type: bool = False,
    ) -> Entity:
        entity = Entity(
            id=entity_id,
            entity_type_id=entity_type_id,
            load_level=LoadLevel.DATA_AND_LINKS,
            display_name=name,
            is_link_entity_type=is_link_entity_type,
            fields={
                k: Field(name=k, data=v) for k, v in (fields or {}).items()
            },
        )
        self.entities[entity_id] = entity
        return entity

    def link(
        self,
        source_id: int,
        target_id: int,
        link_type_id: str,
        index: int = 0,
        link_entity_id: int | None = None,
    ) -> Link:
        source = self.entities[source_id]
        target = self.entities[target_id]
        link = Link(
            link_type_id=link_type_id,
            source=source.ref(),
            target=target.ref(),
            index=index,
            link_entity_id=link_entity_id,
        )
        self.entities[source_id] = source.model_copy(
            update={"outbound_links": source.outbound_links + [link]}
        )
        if link_entity_id is not None:
            self.link_entity_links.setdefault(link_entity_id, []).append(link)
        return link

    def add_row(
        self,
        path: str,
        link_type_id: str | None = None,
        link_entity_id: int | None = None,
        sort_order: int = 0,
    ) -> StructureEntity:
        ids = [int(s) for s in path.split("/")]
        entity_id = ids[-1]
        row = StructureEntity(
            entity_id=entity_id,
            parent_id=ids[-2] if len(ids) > 1 else 0,
            path=path,
            entity_type_id=self.entities[entity_id].entity_type_id,
            link_type_id_from_parent=link_type_id,
            link_entity_id=link_entity_id,
            sort_order=sort_order,
        )
        self.rows.append(row)
        return row

    def remove_rows(self, entity_id: int, parent_id: int | None = None) -> None:
        self.rows = [
            r
            for r in self.rows
            if not (
                r.entity_id == entity_id
                and (parent_id is None or r.parent_id == parent_id)
            )
        ]

    def set_field(self, entity_id: int, name: str, history: list[str]) -> None:
        """Give a field a revision history; the last value is current."""
        revisions = [
            Field(name=name, data=value, revision=i + 1)
            for i, value in enumerate(history)
        ]
        self.history[(entity_id, name)] = revisions
        self.fields[(entity_id, name)] = revisions[-1]
        entity = self.entities[entity_id]
        self.entities[entity_id] = entity.model_copy(
            update={"fields": {**entity.fields, name: revisions[-1]}}
        )

    # -- SourceService ----------------------------------------------------

    def get_entity(self, entity_id: int, level: LoadLevel) -> Entity | None:
        self.fetches[entity_id] += 1
        if entity_id in self.failing:
            raise ConnectionError(f"source unavailable for {entity_id}")
        entity = self.entities.get(entity_id)
        if entity is None:
            return None
        return entity.model_copy(update={"load_level": level})

    def get_links_for_link_entity(self, link_entity_id: int) -> list[Link]:
        return list(self.link_entity_links.get(link_entity_id, []))

    def get_field(self, entity_id: int, field_name: str) -> Field | None:
        return self.fields.get((entity_id, field_name))

    def get_field_history(self, entity_id: int, field_name: str) -> list[Field]:
        return list(self.history.get((entity_id, field_name), []))

    def get_inbound_links(self, entity_id: int) -> list[Link]:
        return [
            link
            for entity in self.entities.values()
            for link in entity.outbound_links
            if link.target.id == entity_id
        ]

    def get_all_link_types(self) -> list[LinkType]:
        return list(self.link_types)

    def get_all_structure_entities_for_type(
        self, channel_id: int, entity_type_id: str
    ) -> list[StructureEntity]:
        return [r for r in self.rows if r.entity_type_id == entity_type_id]

    def get_all_structure_entities_for_entity_in_channel(
        self, channel_id: int, entity_id: int
    ) -> list[StructureEntity]:
        return [r for r in self.rows if r.entity_id == entity_id]

    def get_all_structure_entities_for_entity_with_parent_in_channel(
        self, channel_id: int, entity_id: int, parent_id: int
    ) -> list[StructureEntity]:
        return [
            r
            for r in self.rows
            if r.entity_id == entity_id and r.parent_id == parent_id
        ]

    def entity_exists_in_channel(self, channel_id: int, entity_id: int) -> bool:
        return any(r.entity_id == entity_id for r in self.rows)

    def get_structure_children_from_path(
        self, entity_id: int, path: str
    ) -> list[StructureEntity]:
        return [r for r in self.rows if r.parent_path == path]

    def get_all_structure_entities_from_path(
        self, path: str
    ) -> list[StructureEntity]:
        return [
            r
            for r in self.rows
            if r.path == path or r.path.startswith(path + "/")
        ]


class FakeCatalogClient:
    """Target catalog that records calls and accepts everything by default."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.import_catalog_ok = True
        self.import_resources_ok = True
        self.rejected_codes: set[str] = set()
        self.link_entity_codes: list[str] = []
        self.documents: list[tuple[str, bytes]] = []
        self.catalogs: list[bytes] = []
        self.resources: list[bytes] = []
        self.accept_documents = True

    def calls_to(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    def validate_connection(self) -> str:
        return "Catalog import API 1.0"

    def is_importing(self) -> str:
        return "idle"

    def delete_catalog_entry(self, code: str) -> bool:
        self.calls.append(("delete_catalog_entry", (code,)))
        return code not in self.rejected_codes

    def delete_catalog(self, catalog_id: int) -> bool:
        self.calls.append(("delete_catalog", (catalog_id,)))
        return True

    def delete_catalog_node(self, code: str) -> bool:
        self.calls.append(("delete_catalog_node", (code,)))
        return code not in self.rejected_codes

    def update_link_entity_data(
        self, channel_name, parent_code, link_entity_code, display_name
    ) -> bool:
        self.calls.append(
            (
                "update_link_entity_data",
                (channel_name, parent_code, link_entity_code, display_name),
            )
        )
        return True

    def update_entry_relations(
        self,
        entry_code,
        channel_id,
        channel_name,
        parent_code,
        node_membership,
        link_type_id,
        is_relation,
        link_entity_ids_to_remove=None,
    ) -> bool:
        self.calls.append(
            (
                "update_entry_relations",
                (
                    entry_code,
                    channel_id,
                    channel_name,
                    parent_code,
                    dict(node_membership),
                    link_type_id,
                    is_relation,
                    list(link_entity_ids_to_remove or []),
                ),
            )
        )
        return True

    def get_link_entity_associations_for_entity(
        self, link_type_id, channel_name, parent_codes, target_codes
    ) -> list[str]:
        self.calls.append(
            (
                "get_link_entity_associations_for_entity",
                (link_type_id, channel_name, list(parent_codes), list(target_codes)),
            )
        )
        return list(self.link_entity_codes)

    def import_catalog(self, document: bytes, channel_guid: str) -> bool:
        self.calls.append(("import_catalog", (document, channel_guid)))
        self.catalogs.append(document)
        return self.import_catalog_ok

    def import_resources(self, document: bytes) -> bool:
        self.calls.append(("import_resources", (document,)))
        self.resources.append(document)
        return self.import_resources_ok

    def import_update_completed(
        self, catalog_name: str, event_type: str, resources_included: bool
    ) -> bool:
        self.calls.append(
            ("import_update_completed", (catalog_name, event_type, resources_included))
        )
        return True

    def delete_completed(self, catalog_name: str, event_type: str) -> bool:
        self.calls.append(("delete_completed", (catalog_name, event_type)))
        return True

    def post_document(self, kind: str, document: bytes) -> bool:
        if not self.accept_documents:
            return False
        self.documents.append((kind, document))
        return True


def make_config(**overrides: Any) -> Config:
    values: dict[str, Any] = {
        "endpoint_url": "https://commerce.example.com/import",
        "api_key": "target-key",
        "source_url": "https://pim.example.com/api",
        "source_api_key": "source-key",
        "channel_id": CHANNEL_ID,
        "import_poll_interval": 0.0,
        "max_retries": 1,
    }
    values.update(overrides)
    return Config(**values)


def make_context(
    source: FakeSource, config: Config | None = None
) -> OperationContext:
    """Open an operation context the way the router does."""
    config = config or make_config()
    mapping = CatalogMapping(config, source.get_all_link_types())
    cache = StructureCache(source, config, mapping)
    channel = cache.get_entity(config.channel_id, LoadLevel.DATA_ONLY)
    assert channel is not None
    return OperationContext(
        channel=channel, config=config, mapping=mapping, cache=cache
    )


def ref(entity_id: int, entity_type_id: str) -> EntityRef:
    return EntityRef(id=entity_id, entity_type_id=entity_type_id)


@pytest.fixture
def config() -> Config:
    """Plain channel settings: no prefix, no SKU fan-out."""
    return make_config()


@pytest.fixture
def source() -> FakeSource:
    """Standard channel with two top-level channel nodes."""
    src = FakeSource()
    src.add_entity(CHANNEL_ID, "Channel", name="Web shop")
    src.add_entity(10, "ChannelNode", name="Shoes")
    src.add_entity(20, "ChannelNode", name="Boots")
    src.link(CHANNEL_ID, 10, "ChannelChannelNodes")
    src.link(CHANNEL_ID, 20, "ChannelChannelNodes", index=1)
    src.add_row("1")
    src.add_row("1/10", "ChannelChannelNodes")
    src.add_row("1/20", "ChannelChannelNodes", sort_order=1)
    return src


@pytest.fixture
def catalog() -> FakeCatalogClient:
    return FakeCatalogClient()
