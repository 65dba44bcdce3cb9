"""Delete/unlink propagator.

Given an entity that lost a link (or was deleted outright), decide per
entity whether it must be:

- **unlinked**: a resource still referenced elsewhere loses one parent,
- **relinked**: an entry still in the channel gets its node membership
  and parent relations corrected,
- **deleted**: the entity left the channel, so it is removed from the
  catalog and its outbound links are walked depth-first.

One top-level ``delete()`` threads a visited set through every recursive
call. Ids are added before descending, so circular relation graphs are
walked at most once per entity. Structural deletions are batched into one
``deleted`` document and relinks into one ``updated`` document; both
carry the lineage of the top-level parent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from lxml import etree

from .context import OperationContext, send_document
from .documents import (
    ACTION_DELETED,
    ACTION_UPDATED,
    RESOURCE_DELETED,
    action_document,
    add_entry,
    entry_codes,
    resource_codes,
    resource_delete_document,
    resource_unlink_document,
    serialize,
)
from .hierarchy import (
    find_structure_entities,
    lineage,
    resource_ids,
    should_entity_exist_in_channel_nodes,
)
from .models import Entity, EntityKind, Link, LoadLevel, MutationAction
from .skus import sku_item_ids

if TYPE_CHECKING:
    from ..core.client import CatalogClient

logger = logging.getLogger(__name__)

NO_PARENT = -1


@dataclass
class _Batch:
    """Action documents shared by one top-level delete."""

    deleted: etree._Element
    updated: etree._Element


class DeletePropagator:
    """Remove or relink entities after a deletion or link removal.

    Args:
        client: Target catalog transport.
    """

    def __init__(self, client: CatalogClient) -> None:
        self.client = client

    def delete(
        self,
        ctx: OperationContext,
        parent_id: int,
        target: Entity,
        link_type_id: str | None,
        visited: set[int] | None = None,
    ) -> None:
        """Propagate the removal of ``target`` below ``parent_id``.

        Args:
            ctx: Operation context.
            parent_id: Entity the target was linked from, ``NO_PARENT``
                when the target itself was deleted.
            target: The removed entity, loaded with its outbound links.
            link_type_id: Link type of the removed link, if any.
            visited: Ids already deleted by the caller.

        Raises:
            requests.RequestException: When the target system fails.
        """
        visited = set() if visited is None else visited
        parents = lineage(ctx.cache, parent_id)
        batch = _Batch(
            deleted=action_document(ACTION_DELETED, parents, ctx.mapping),
            updated=action_document(ACTION_UPDATED, parents, ctx.mapping),
        )

        self._delete(ctx, parent_id, target, link_type_id, visited, batch, 0)

        for action, document in (
            (ACTION_DELETED, batch.deleted),
            (ACTION_UPDATED, batch.updated),
        ):
            codes = entry_codes(document)
            if codes:
                send_document(
                    ctx,
                    self.client,
                    action,
                    serialize(document),
                    detail=f"entries={len(codes)}",
                )

    def _delete(
        self,
        ctx: OperationContext,
        parent_id: int,
        target: Entity,
        link_type_id: str | None,
        visited: set[int],
        batch: _Batch,
        depth: int,
    ) -> None:
        if depth > ctx.config.max_delete_depth:
            logger.error(
                "Maximum delete depth %d reached at entity %d, branch abandoned",
                ctx.config.max_delete_depth,
                target.id,
            )
            ctx.record(
                MutationAction.DELETE_ENTRY,
                ctx.mapping.code(target.id),
                success=False,
                error="maximum delete depth reached",
            )
            return

        if not ctx.cache.entity_exists_in_channel(target.id):
            self._delete_entity(
                ctx, parent_id, target, visited, batch, depth
            )
            return

        parent = (
            ctx.cache.get_entity(parent_id, LoadLevel.DATA_ONLY)
            if parent_id != NO_PARENT
            else None
        )
        if parent is None:
            logger.warning(
                "Entity %d is still in the channel but parent %d is unknown, "
                "nothing to relink",
                target.id,
                parent_id,
            )
            return

        if target.kind == EntityKind.RESOURCE:
            self._unlink_resource(ctx, target, parent)
        else:
            self._relink(ctx, target, parent, link_type_id, batch)

    # ------------------------------------------------------------------
    # Still in channel
    # ------------------------------------------------------------------

    def _unlink_resource(
        self, ctx: OperationContext, resource: Entity, parent: Entity
    ) -> None:
        document = resource_unlink_document(resource, parent.id, ctx.mapping)
        payload = serialize(document)
        ok = self.client.import_resources(payload)
        ctx.record(
            MutationAction.UNLINK_RESOURCE,
            ctx.mapping.code(resource.id),
            success=ok,
            error=None if ok else "resource unlink rejected",
            detail=f"parent={ctx.mapping.code(parent.id)}",
        )
        if ok:
            send_document(ctx, self.client, "resources", payload)

    def _expanded_codes(self, ctx: OperationContext, entity: Entity) -> list[str]:
        """Codes standing for ``entity`` in the catalog (SKUs for items)."""
        config = ctx.config
        if entity.kind != EntityKind.ITEM or not config.items_to_skus:
            return [ctx.mapping.code(entity.id)]
        ids = sku_item_ids(entity, config.sku_field_name)
        if config.use_three_levels_in_commerce:
            ids.insert(0, str(entity.id))
        codes: list[str] = []
        for entity_id in ids:
            code = ctx.mapping.code(entity_id)
            if code not in codes:
                codes.append(code)
        return codes

    def _relink(
        self,
        ctx: OperationContext,
        target: Entity,
        parent: Entity,
        link_type_id: str | None,
        batch: _Batch,
    ) -> None:
        cache = ctx.cache
        mapping = ctx.mapping
        existing = cache.get_structure_entities_for_entity(target.id)

        channel_nodes = list(
            cache.get_structure_entities_for_type(EntityKind.CHANNEL_NODE.value)
        )
        if not channel_nodes and parent.kind == EntityKind.CHANNEL:
            channel_rows = cache.get_structure_entities_for_entity(parent.id)
            channel_nodes = channel_rows[:1]

        parent_codes = self._expanded_codes(ctx, parent)
        link_entity_codes: list[str] = []
        if mapping.has_link_entity(link_type_id):
            link_entity_codes = self._link_entity_codes_to_remove(
                ctx, target, parent, parent_codes, link_type_id
            )

        elements: list[tuple[int, str]] = []
        for row in existing:
            if (row.entity_id, row.entity_type_id) not in elements:
                elements.append((row.entity_id, row.entity_type_id))
            source = (
                target
                if row.entity_id == target.id
                else cache.get_entity(row.entity_id, LoadLevel.DATA_AND_LINKS)
            )
            if source is None:
                continue
            for link in source.outbound_links:
                pair = (link.target.id, link.target.entity_type_id)
                if link.target.kind != EntityKind.RESOURCE and pair not in elements:
                    elements.append(pair)

        to_update: dict[str, dict[str, bool]] = {}
        for entity_id, entity_type_id in elements:
            membership = should_entity_exist_in_channel_nodes(
                cache, entity_id, channel_nodes
            )
            if EntityKind.from_type_id(entity_type_id) == EntityKind.ITEM:
                codes = self._item_codes(
                    ctx, entity_id, target if entity_id == target.id else None
                )
            else:
                codes = [mapping.code(entity_id)]
            for code in codes:
                to_update.setdefault(code, membership)

        is_relation = mapping.is_relation(link_type_id)
        for code, membership in to_update.items():
            for parent_code in parent_codes:
                ok = self.client.update_entry_relations(
                    code,
                    ctx.channel_id,
                    ctx.channel_name,
                    parent_code,
                    membership,
                    link_type_id or "",
                    is_relation,
                    link_entity_codes,
                )
                ctx.record(
                    MutationAction.UPDATE_RELATIONS,
                    code,
                    success=ok,
                    error=None if ok else "relation update rejected",
                    detail=f"parent={parent_code}",
                )
            add_entry(batch.updated, code)

    def _link_entity_codes_to_remove(
        self,
        ctx: OperationContext,
        target: Entity,
        parent: Entity,
        parent_codes: list[str],
        link_type_id: str,
    ) -> list[str]:
        """Link entity codes between parent and target that lost their link.

        Codes still carried by a remaining row below the same parent stay
        in the catalog.
        """
        codes = self.client.get_link_entity_associations_for_entity(
            link_type_id,
            ctx.channel_name,
            parent_codes,
            self._expanded_codes(ctx, target),
        )
        rows = ctx.cache.get_all_structure_entities(ctx.config.export_entity_types)
        still_used = {
            ctx.mapping.code(row.link_entity_id)
            for row in find_structure_entities(
                rows, parent.id, target.id, link_type_id
            )
            if row.link_entity_id is not None
        }
        return [code for code in codes if code not in still_used]

    def _item_codes(
        self, ctx: OperationContext, item_id: int, item: Entity | None = None
    ) -> list[str]:
        """Catalog codes of an item, loading its fields when ``item`` lacks them.

        An item that cannot be loaded keeps its own code.
        """
        if not ctx.config.items_to_skus:
            return [ctx.mapping.code(item_id)]
        if item is None or item.load_level < LoadLevel.DATA_ONLY:
            try:
                item = ctx.cache.get_entity(item_id, LoadLevel.DATA_ONLY)
            except Exception as exc:
                logger.warning("Error when getting item %d: %s", item_id, exc)
                item = None
        if item is None:
            return [ctx.mapping.code(item_id)]
        return self._expanded_codes(ctx, item)

    # ------------------------------------------------------------------
    # Gone from channel
    # ------------------------------------------------------------------

    def _delete_entity(
        self,
        ctx: OperationContext,
        parent_id: int,
        target: Entity,
        visited: set[int],
        batch: _Batch,
        depth: int,
    ) -> None:
        visited.add(target.id)
        code = ctx.mapping.code(target.id)
        resources: list[int] = []

        match target.kind:
            case EntityKind.CHANNEL:
                ok = self.client.delete_catalog(target.id)
                ctx.record(
                    MutationAction.DELETE_CATALOG,
                    code,
                    success=ok,
                    error=None if ok else "catalog delete rejected",
                )
                resources = resource_ids(target)

            case EntityKind.CHANNEL_NODE:
                ok = self.client.delete_catalog_node(code)
                ctx.record(
                    MutationAction.DELETE_NODE,
                    code,
                    success=ok,
                    error=None if ok else "node delete rejected",
                )
                add_entry(batch.deleted, code)
                for link in _entry_links(target):
                    self._descend(
                        ctx, target.id, link.target.id, link.link_type_id,
                        visited, batch, depth,
                    )
                resources = resource_ids(target)

            case EntityKind.ITEM:
                resources = resource_ids(target)
                for item_code in self._item_codes(ctx, target.id, target):
                    self._delete_entry(ctx, item_code, batch)

            case EntityKind.RESOURCE:
                resources = [target.id]

            case _:
                self._delete_entry(ctx, code, batch)
                resources = resource_ids(target)
                for link in _entry_links(target):
                    self._descend(
                        ctx, target.id, link.target.id, link.link_type_id,
                        visited, batch, depth,
                    )

        if resources:
            self._sweep_resources(ctx, parent_id, resources)

    def _delete_entry(
        self, ctx: OperationContext, code: str, batch: _Batch
    ) -> None:
        ok = self.client.delete_catalog_entry(code)
        ctx.record(
            MutationAction.DELETE_ENTRY,
            code,
            success=ok,
            error=None if ok else "entry delete rejected",
        )
        add_entry(batch.deleted, code)

    def _descend(
        self,
        ctx: OperationContext,
        parent_id: int,
        child_id: int,
        link_type_id: str,
        visited: set[int],
        batch: _Batch,
        depth: int,
    ) -> None:
        if child_id in visited:
            logger.info(
                "Entity %d has already been deleted, break the chain to avoid "
                "circular relations",
                child_id,
            )
            return
        try:
            child = ctx.cache.get_entity(child_id, LoadLevel.DATA_AND_LINKS)
        except Exception as exc:
            logger.warning(
                "Could not fetch child %d of %d, skipping: %s",
                child_id,
                parent_id,
                exc,
            )
            return
        if child is None:
            logger.warning(
                "Child %d of %d not found in source, skipping", child_id, parent_id
            )
            return
        self._delete(
            ctx, parent_id, child, link_type_id, visited, batch, depth + 1
        )

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def _sweep_resources(
        self, ctx: OperationContext, parent_id: int, ids: list[int]
    ) -> None:
        """Delete resources no longer referenced anywhere in the channel."""
        orphans = [
            rid for rid in ids if not ctx.cache.entity_exists_in_channel(rid)
        ]
        if not orphans:
            return

        parent = (
            ctx.cache.get_entity(parent_id, LoadLevel.DATA_ONLY)
            if parent_id != NO_PARENT
            else None
        )
        if parent is not None:
            for rid in orphans:
                resource = ctx.cache.get_entity(rid, LoadLevel.DATA_ONLY)
                if resource is not None:
                    self._unlink_resource(ctx, resource, parent)

        document = resource_delete_document(orphans, ctx.mapping)
        payload = serialize(document)
        ok = self.client.import_resources(payload)
        for code in resource_codes(document, RESOURCE_DELETED):
            ctx.record(
                MutationAction.DELETE_RESOURCE,
                code,
                success=ok,
                error=None if ok else "resource delete rejected",
            )
        if ok:
            send_document(ctx, self.client, "resources", payload)


def _entry_links(entity: Entity) -> list[Link]:
    """Outbound links to walk; resources are handled by the sweep."""
    return [
        link
        for link in entity.outbound_links
        if link.target.kind != EntityKind.RESOURCE
    ]
