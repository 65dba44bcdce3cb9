"""Per-operation structure cache.

Wraps the source services for one change operation on one channel:

- Entities are cached by id at the richest load level seen so far.
- Structure rows are cached per entity type and per entity.
- Parent products are memoized per entity id.

A cache never outlives its operation. ``flush_cache()`` runs at both
operation boundaries so nothing leaks between events or channels.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..config import Config
from .hierarchy import filter_linked_content
from .mapping import CatalogMapping
from .models import Entity, EntityKind, LoadLevel, StructureEntity

if TYPE_CHECKING:
    from ..core.source import SourceService

logger = logging.getLogger(__name__)


class StructureCache:
    """Memoizing view of the source system for one operation.

    Args:
        source: Source data and channel-structure service.
        config: Channel settings.
        mapping: Link-type classification for the channel.
    """

    def __init__(
        self,
        source: SourceService,
        config: Config,
        mapping: CatalogMapping,
    ) -> None:
        self.source = source
        self.config = config
        self.mapping = mapping
        self.channel_id = config.channel_id
        self._entities: dict[int, Entity] = {}
        self._rows_by_type: dict[str, list[StructureEntity]] = {}
        self._rows_by_entity: dict[int, list[StructureEntity]] = {}
        self._parent_products: dict[int, Entity | None] = {}
        self._resource_rows: list[StructureEntity] | None = None

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def get_entity(self, entity_id: int, level: LoadLevel) -> Entity | None:
        """Return the entity at ``level`` or richer.

        A cached copy is reused when its level is at least ``level``;
        otherwise the entity is fetched and replaces the cached copy.

        Returns:
            The entity, or None if the source does not know it.
        """
        cached = self._entities.get(entity_id)
        if cached is not None and cached.load_level >= level:
            return cached

        entity = self.source.get_entity(entity_id, level)
        if entity is None:
            logger.debug("Entity %d not found in source", entity_id)
            return None
        self._entities[entity_id] = entity
        return entity

    # ------------------------------------------------------------------
    # Structure rows
    # ------------------------------------------------------------------

    def get_structure_entities_for_type(
        self, entity_type_id: str
    ) -> list[StructureEntity]:
        """All rows of one entity type in the channel, unfiltered."""
        rows = self._rows_by_type.get(entity_type_id)
        if rows is None:
            rows = self.source.get_all_structure_entities_for_type(
                self.channel_id, entity_type_id
            )
            self._rows_by_type[entity_type_id] = rows
        return rows

    def get_all_structure_entities(
        self, entity_types: list[str] | tuple[str, ...]
    ) -> list[StructureEntity]:
        """Rows for each entity type across the whole channel.

        Rows of entities that are reachable only through association links
        are dropped unless ``force_include_linked_content`` is set.
        """
        rows: list[StructureEntity] = []
        for entity_type_id in entity_types:
            rows.extend(self.get_structure_entities_for_type(entity_type_id))

        if self.config.force_include_linked_content:
            return rows

        kept = filter_linked_content(rows, self.mapping)
        if len(kept) != len(rows):
            logger.debug(
                "Dropped %d association-only structure rows",
                len(rows) - len(kept),
            )
        return kept

    def get_structure_entities_for_entity(
        self, entity_id: int
    ) -> list[StructureEntity]:
        rows = self._rows_by_entity.get(entity_id)
        if rows is None:
            rows = self.source.get_all_structure_entities_for_entity_in_channel(
                self.channel_id, entity_id
            )
            self._rows_by_entity[entity_id] = rows
        return rows

    def get_entity_in_channel_with_parent(
        self, entity_id: int, parent_id: int
    ) -> list[StructureEntity]:
        return self.source.get_all_structure_entities_for_entity_with_parent_in_channel(
            self.channel_id, entity_id, parent_id
        )

    def entity_exists_in_channel(self, entity_id: int) -> bool:
        return self.source.entity_exists_in_channel(self.channel_id, entity_id)

    def get_children_entities_in_channel(
        self, entity_id: int, path: str
    ) -> list[StructureEntity]:
        if not path:
            return []
        return self.source.get_structure_children_from_path(entity_id, path)

    def get_structure_entities_from_path(
        self, path: str
    ) -> list[StructureEntity]:
        """Every row at or below ``path``."""
        if not path:
            return []
        return self.source.get_all_structure_entities_from_path(path)

    def get_parent_structure_entity(
        self,
        source_entity_id: int,
        target_entity_id: int,
        rows: list[StructureEntity],
    ) -> StructureEntity | None:
        """The source's row that is the parent of the target's row.

        Matches the target row's path minus its last segment against the
        rows of the source entity.
        """
        target_row = next(
            (row for row in rows if row.entity_id == target_entity_id), None
        )
        if target_row is None:
            return None

        parent_path = target_row.parent_path
        for row in self.get_structure_entities_for_entity(source_entity_id):
            if row.path == parent_path:
                return row
        return None

    # ------------------------------------------------------------------
    # Resources and parents
    # ------------------------------------------------------------------

    def get_resource_locations(
        self, resource_id: int
    ) -> list[StructureEntity]:
        """Rows of one resource, from a Resource list loaded once per operation."""
        if self._resource_rows is None:
            self._resource_rows = self.source.get_all_structure_entities_for_type(
                self.channel_id, EntityKind.RESOURCE.value
            )
        return [r for r in self._resource_rows if r.entity_id == resource_id]

    def get_parent_product(
        self, structure_entity: StructureEntity
    ) -> Entity | None:
        """Source of the first inbound relation link, memoized per entity."""
        entity_id = structure_entity.entity_id
        if entity_id in self._parent_products:
            return self._parent_products[entity_id]

        parent: Entity | None = None
        for link in self.source.get_inbound_links(entity_id):
            if self.mapping.is_relation(link.link_type_id):
                parent = self.get_entity(link.source.id, LoadLevel.DATA_ONLY)
                break

        self._parent_products[entity_id] = parent
        return parent

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush_cache(self) -> None:
        """Drop everything cached for the current operation."""
        self._entities.clear()
        self._rows_by_type.clear()
        self._rows_by_entity.clear()
        self._parent_products.clear()
        self._resource_rows = None
