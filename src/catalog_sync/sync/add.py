"""Add propagator: project the rows in scope onto one catalog batch.

The router decides which structure rows are affected and stores them on
the ``OperationContext``. ``AddPropagator`` turns those rows into catalog
nodes, entries, relations, associations and resources, then imports the
catalog document followed by the resources document.

Resources are only imported after the catalog import succeeded, since
resource documents reference entry codes the catalog creates.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import TYPE_CHECKING

from lxml import etree

from .context import OperationContext, send_document
from .documents import (
    RESOURCE_ADDED,
    CatalogElements,
    catalog_association,
    catalog_document,
    entry_element,
    entry_relation,
    node_element,
    node_entry_relation,
    node_relation,
    resource_element,
    resources_document,
    serialize,
    sku_entry_elements,
)
from .events import ConnectorEvent, EventReporter
from .models import Entity, EntityKind, LoadLevel, MutationAction, StructureEntity

if TYPE_CHECKING:
    from ..core.client import CatalogClient

logger = logging.getLogger(__name__)


class AddPropagator:
    """Create or update everything in the operation's scope.

    Args:
        client: Target catalog transport.
        events: Progress sink.
    """

    def __init__(self, client: CatalogClient, events: EventReporter) -> None:
        self.client = client
        self.events = events

    def add(
        self,
        ctx: OperationContext,
        event: ConnectorEvent,
        skus: Collection[str] | None = None,
    ) -> bool:
        """Import the rows in ``ctx.structure_entities``.

        Args:
            ctx: Operation context holding the rows in scope.
            event: Connector event to report progress on.
            skus: Limit SKU fan-out to these SKU ids (all SKUs when None).

        Returns:
            True when resources were imported as well. A failed catalog
            import marks ``event`` as error and returns False.
        """
        self.events.update(event, "Generating catalog document...", 11)
        elements = self.build_elements(ctx, skus)
        counts = elements.counts()
        logger.info(
            "Catalog built with %(nodes)d nodes, %(entries)d entries, "
            "%(relations)d relations, %(associations)d associations",
            counts,
        )
        catalog = serialize(catalog_document(ctx.channel, elements, ctx.mapping))
        self.events.update(event, "Done generating catalog document", 25)

        self.events.update(event, "Generating resources document...", 26)
        resources = self.build_resources(ctx)
        self.events.update(event, "Done generating resources document", 50)

        self.events.update(event, "Sending catalog document to target...", 51)
        channel_code = ctx.mapping.code(ctx.channel_id)
        detail = ", ".join(f"{k}={v}" for k, v in counts.items())
        if not self.client.import_catalog(catalog, ctx.mapping.channel_guid):
            ctx.record(
                MutationAction.IMPORT_CATALOG,
                channel_code,
                success=False,
                error="catalog import failed",
                detail=detail,
            )
            self.events.update(
                event, "Error while sending catalog document", is_error=True
            )
            return False

        ctx.record(MutationAction.IMPORT_CATALOG, channel_code, detail=detail)
        self.events.update(event, "Done sending catalog document", 75)
        send_document(ctx, self.client, "catalog", catalog, detail)

        if not resources:
            logger.debug("No resources in scope, skipping resource import")
            return False

        self.events.update(event, "Sending resources to target...", 76)
        payload = serialize(resources_document(resources))
        if not self.client.import_resources(payload):
            ctx.record(
                MutationAction.IMPORT_RESOURCES,
                channel_code,
                success=False,
                error="resource import failed",
            )
            self.events.update(
                event, "Error while sending resources", is_error=True
            )
            return False

        ctx.record(
            MutationAction.IMPORT_RESOURCES,
            channel_code,
            detail=f"resources={len(resources)}",
        )
        self.events.update(event, "Done sending resources", 99)
        send_document(ctx, self.client, "resources", payload)
        return True

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def build_elements(
        self,
        ctx: OperationContext,
        skus: Collection[str] | None = None,
    ) -> CatalogElements:
        """Project the rows in scope onto catalog elements."""
        elements = CatalogElements()
        seen_nodes: set[int] = set()
        seen_entries: set[str] = set()

        for row in ctx.structure_entities:
            kind = row.kind
            if kind in (EntityKind.CHANNEL, EntityKind.RESOURCE):
                continue

            entity = ctx.cache.get_entity(row.entity_id, LoadLevel.DATA_ONLY)
            if entity is None:
                logger.warning(
                    "Entity %d in structure but not in source, skipping",
                    row.entity_id,
                )
                continue

            if kind == EntityKind.CHANNEL_NODE:
                self._add_node(ctx, elements, row, entity, seen_nodes)
                continue
            if not ctx.mapping.is_entry_type(row.entity_type_id):
                continue

            self._add_entries(ctx, elements, entity, seen_entries, skus)
            if row.link_type_id_from_parent:
                self._add_position(ctx, elements, row, entity, skus)

        return elements

    def _add_node(
        self,
        ctx: OperationContext,
        elements: CatalogElements,
        row: StructureEntity,
        entity: Entity,
        seen_nodes: set[int],
    ) -> None:
        under_channel = row.parent_id == ctx.channel_id
        if row.entity_id not in seen_nodes:
            seen_nodes.add(row.entity_id)
            parent_id = None if under_channel else row.parent_id
            elements.nodes.append(
                node_element(entity, parent_id, row.sort_order, ctx.mapping)
            )
        elif not under_channel:
            elements.relations.append(
                node_relation(
                    row.parent_id, row.entity_id, row.sort_order, ctx.mapping
                )
            )

    def _add_entries(
        self,
        ctx: OperationContext,
        elements: CatalogElements,
        entity: Entity,
        seen_entries: set[str],
        skus: Collection[str] | None,
    ) -> None:
        mapping = ctx.mapping
        item_code = mapping.code(entity.id)

        def append(entry: etree._Element) -> None:
            code = entry.findtext("Code")
            if code not in seen_entries:
                seen_entries.add(code)
                elements.entries.append(entry)

        sku_entries = self._sku_entries(ctx, entity, skus)
        if sku_entries is None:
            append(entry_element(entity, mapping))
            return

        for sku_entry in sku_entries:
            append(sku_entry)
        if ctx.config.use_three_levels_in_commerce and item_code not in seen_entries:
            append(entry_element(entity, mapping))
            for index, sku_entry in enumerate(sku_entries):
                elements.relations.append(
                    entry_relation(
                        item_code,
                        entity.entity_type_id,
                        sku_entry.findtext("Code"),
                        index,
                        mapping,
                    )
                )

    def _sku_entries(
        self,
        ctx: OperationContext,
        entity: Entity,
        skus: Collection[str] | None,
    ) -> list[etree._Element] | None:
        """SKU entries of an item, or None when the entity does not fan out."""
        if entity.kind != EntityKind.ITEM or not ctx.config.items_to_skus:
            return None
        entries = sku_entry_elements(
            entity, ctx.mapping, ctx.config.sku_field_name
        )
        if skus is not None:
            codes = {ctx.mapping.code(sku) for sku in skus}
            entries = [e for e in entries if e.findtext("Code") in codes]
        elif not entries:
            return None
        return entries

    def _position_codes(
        self,
        ctx: OperationContext,
        entity: Entity,
        skus: Collection[str] | None = None,
    ) -> list[str]:
        """Codes that hang below a parent for one position of ``entity``."""
        if ctx.config.use_three_levels_in_commerce:
            return [ctx.mapping.code(entity.id)]
        sku_entries = self._sku_entries(ctx, entity, skus)
        if sku_entries is None:
            return [ctx.mapping.code(entity.id)]
        return [e.findtext("Code") for e in sku_entries]

    def _add_position(
        self,
        ctx: OperationContext,
        elements: CatalogElements,
        row: StructureEntity,
        entity: Entity,
        skus: Collection[str] | None,
    ) -> None:
        mapping = ctx.mapping
        link_type_id = row.link_type_id_from_parent

        if mapping.is_channel_node_link(link_type_id):
            if row.parent_id == ctx.channel_id:
                return
            for code in self._position_codes(ctx, entity, skus):
                elements.relations.append(
                    node_entry_relation(
                        row.parent_id, code, row.sort_order, mapping
                    )
                )
        elif mapping.is_relation(link_type_id):
            parent = ctx.cache.get_entity(row.parent_id, LoadLevel.DATA_ONLY)
            if parent is None:
                logger.warning(
                    "Parent %d of %d not found, relation skipped",
                    row.parent_id,
                    row.entity_id,
                )
                return
            for parent_code in self._position_codes(ctx, parent):
                for code in self._position_codes(ctx, entity, skus):
                    elements.relations.append(
                        entry_relation(
                            parent_code,
                            parent.entity_type_id,
                            code,
                            row.sort_order,
                            mapping,
                        )
                    )
        else:
            elements.associations.append(catalog_association(row, mapping))

    def build_resources(self, ctx: OperationContext) -> list[etree._Element]:
        """Resource elements for the Resource rows in scope."""
        resources: list[etree._Element] = []
        seen: set[int] = set()
        for row in ctx.structure_entities:
            if row.kind != EntityKind.RESOURCE or row.entity_id in seen:
                continue
            seen.add(row.entity_id)

            resource = ctx.cache.get_entity(row.entity_id, LoadLevel.DATA_ONLY)
            if resource is None:
                logger.warning("Resource %d not found, skipping", row.entity_id)
                continue

            parent_codes: list[str] = []
            for location in ctx.cache.get_resource_locations(row.entity_id):
                code = ctx.mapping.code(location.parent_id)
                if code not in parent_codes:
                    parent_codes.append(code)
            resources.append(
                resource_element(
                    resource, RESOURCE_ADDED, parent_codes, ctx.mapping
                )
            )
        return resources
