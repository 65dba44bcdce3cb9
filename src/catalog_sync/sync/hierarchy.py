"""Hierarchy questions over structure rows.

Pure functions over lists of ``StructureEntity`` plus a few that consult
the per-operation ``StructureCache``:

- ``path_ids`` / ``parent_path``: path arithmetic.
- ``target_entity_path``: where an entity sits (optionally below a parent).
- ``ancestor_pairs``: (entity, parent) pairs walking a path upward.
- ``find_structure_entities``: rows for one parent/entity/link type.
- ``filter_linked_content``: drop association-only rows.
- ``should_entity_exist_in_channel_nodes``: per-node membership after a
  link removal.
- ``unique_by_entity_id``: first row per entity.
- ``resource_ids``: resources an entity links to.
- ``lineage``: ancestor entities of a parent, root first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from .models import Entity, EntityKind, LoadLevel, StructureEntity

if TYPE_CHECKING:
    from .cache import StructureCache
    from .mapping import CatalogMapping

logger = logging.getLogger(__name__)


def path_ids(path: str) -> list[int]:
    """Ids along a path, channel root first."""
    if not path:
        return []
    return [int(segment) for segment in path.split("/")]


def parent_path(path: str) -> str:
    """Path with its last segment removed."""
    return path.rpartition("/")[0]


def target_entity_path(
    entity_id: int,
    rows: Iterable[StructureEntity],
    parent_id: int | None = None,
) -> str:
    """Path of the first row for ``entity_id`` (below ``parent_id`` if given)."""
    for row in rows:
        if row.entity_id != entity_id:
            continue
        if parent_id is None or row.parent_id == parent_id:
            return row.path
    return ""


def ancestor_pairs(row: StructureEntity) -> list[tuple[int, int]]:
    """(entity_id, parent_id) pairs for every ancestor of ``row``.

    The row itself is excluded; the walk goes upward and stops below the
    channel root.

    >>> ancestor_pairs(StructureEntity(entity_id=4, parent_id=3,
    ...     path="1/2/3/4", entity_type_id="Item"))
    [(3, 2), (2, 1)]
    """
    ids = list(reversed(path_ids(row.path)))[1:]
    return [(ids[i], ids[i + 1]) for i in range(len(ids) - 1)]


def find_structure_entities(
    rows: Iterable[StructureEntity],
    parent_id: int,
    entity_id: int,
    link_type_id: str,
) -> list[StructureEntity]:
    return [
        row
        for row in rows
        if row.parent_id == parent_id
        and row.entity_id == entity_id
        and row.link_type_id_from_parent == link_type_id
    ]


def filter_linked_content(
    rows: list[StructureEntity], mapping: CatalogMapping
) -> list[StructureEntity]:
    """Keep rows of entities that have at least one hierarchical position."""
    hierarchical = {
        row.entity_id for row in rows if mapping.belongs_in_channel(row)
    }
    return [row for row in rows if row.entity_id in hierarchical]


def unique_by_entity_id(
    rows: Iterable[StructureEntity],
) -> list[StructureEntity]:
    seen: set[int] = set()
    unique: list[StructureEntity] = []
    for row in rows:
        if row.entity_id not in seen:
            seen.add(row.entity_id)
            unique.append(row)
    return unique


def should_entity_exist_in_channel_nodes(
    cache: StructureCache,
    entity_id: int,
    channel_nodes: Iterable[StructureEntity],
) -> dict[str, bool]:
    """Membership of ``entity_id`` below each channel node.

    Returns:
        ``{node_code: still_member}``; a node stays a parent while the
        entity has at least one row directly below it.
    """
    membership: dict[str, bool] = {}
    for node in channel_nodes:
        code = cache.mapping.code(node.entity_id)
        if code in membership:
            continue
        rows = cache.get_entity_in_channel_with_parent(
            entity_id, node.entity_id
        )
        membership[code] = bool(rows)
    return membership


def resource_ids(entity: Entity) -> list[int]:
    """Ids of resources the entity links to, in link order."""
    ids: list[int] = []
    for link in entity.outbound_links:
        if link.target.kind == EntityKind.RESOURCE and link.target.id not in ids:
            ids.append(link.target.id)
    return ids


def lineage(cache: StructureCache, parent_id: int) -> list[Entity]:
    """Ancestor entities of ``parent_id`` along its first path, root first.

    The parent itself closes the list. Ancestors the source no longer
    knows are skipped.
    """
    if parent_id < 0:
        return []
    rows = cache.get_structure_entities_for_entity(parent_id)
    if not rows:
        return []
    entities: list[Entity] = []
    for ancestor_id in path_ids(rows[0].path):
        entity = cache.get_entity(ancestor_id, LoadLevel.DATA_ONLY)
        if entity is None:
            logger.warning(
                "Ancestor %d of %d missing from source", ancestor_id, parent_id
            )
            continue
        entities.append(entity)
    return entities
