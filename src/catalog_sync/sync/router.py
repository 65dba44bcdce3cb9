"""Change router: dispatch change events to the add and delete propagators.

``ChangeRouter`` exposes one handler per inbound change event. Every
handler follows the same lifecycle:

1. Ignore events for other channels (returns ``None``).
2. Start a connector event.
3. Open an ``OperationContext`` with a fresh ``StructureCache``.
4. Collect the affected structure rows and run a propagator.
5. Notify the target that the import or delete completed, unless the
   connector event is in error.
6. Close the context (cache flushed) whatever happened.
7. Return a ``ChangeReport``.

Exceptions never escape a handler: they end up in the report and the
connector event instead.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..config import Config
from .add import AddPropagator
from .cache import StructureCache
from .context import OperationContext, send_document
from .delete import NO_PARENT, DeletePropagator
from .documents import (
    RESOURCE_UPDATED,
    resource_element,
    resources_document,
    serialize,
    update_document,
)
from .events import ConnectorEvent, EventReporter
from .hierarchy import ancestor_pairs, target_entity_path, unique_by_entity_id
from .mapping import CatalogMapping
from .models import (
    ChangeEventType,
    ChangeReport,
    DeleteCompletedEventType,
    Entity,
    EntityKind,
    ImportCompletedEventType,
    LoadLevel,
    Mutation,
    MutationAction,
    StructureEntity,
)
from .skus import diff_sku_ids

if TYPE_CHECKING:
    from ..core.client import CatalogClient
    from ..core.source import SourceService

logger = logging.getLogger(__name__)

# Work done inside an open operation; returns whether resources were imported.
Work = Callable[[OperationContext, ConnectorEvent], bool]
Completion = Callable[[OperationContext, bool], None]


class ChannelNotFoundError(LookupError):
    """The configured channel is missing from the source or is not a channel."""


class ChangeRouter:
    """Route change events for one channel.

    Args:
        source: Source data and channel-structure service.
        client: Target catalog transport.
        config: Channel settings.
        events: Connector event sink; a private one is created if omitted.
    """

    def __init__(
        self,
        source: SourceService,
        client: CatalogClient,
        config: Config,
        events: EventReporter | None = None,
    ) -> None:
        self.source = source
        self.client = client
        self.config = config
        self.events = events or EventReporter()
        self.adder = AddPropagator(client, self.events)
        self.deleter = DeletePropagator(client)
        self._mapping: CatalogMapping | None = None

    @property
    def channel_id(self) -> int:
        return self.config.channel_id

    @property
    def mapping(self) -> CatalogMapping:
        """Link classification, built once from the source model."""
        if self._mapping is None:
            self._mapping = CatalogMapping(
                self.config, self.source.get_all_link_types()
            )
        return self._mapping

    def validate_channel(self) -> bool:
        """Check that the configured channel exists and is a channel."""
        channel = self.source.get_entity(self.channel_id, LoadLevel.SHALLOW)
        if channel is None or channel.kind != EntityKind.CHANNEL:
            logger.error(
                "Channel id %d is not valid: entity is not a channel or "
                "does not exist",
                self.channel_id,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(
        self, mutations: list[Mutation]
    ) -> Iterator[OperationContext]:
        cache = StructureCache(self.source, self.config, self.mapping)
        channel = cache.get_entity(self.channel_id, LoadLevel.DATA_ONLY)
        if channel is None or channel.kind != EntityKind.CHANNEL:
            cache.flush_cache()
            raise ChannelNotFoundError(
                f"Could not find the channel with id: {self.channel_id}"
            )
        ctx = OperationContext(
            channel=channel,
            config=self.config,
            mapping=self.mapping,
            cache=cache,
            mutations=mutations,
        )
        try:
            yield ctx
        finally:
            ctx.close()

    def _handle(
        self,
        event_type: ChangeEventType,
        channel_id: int,
        entity_id: int | None,
        message: str,
        work: Work,
        complete: Completion,
    ) -> ChangeReport | None:
        if channel_id != self.channel_id:
            logger.debug(
                "Ignoring %s for channel %d (configured channel is %d)",
                event_type.value,
                channel_id,
                self.channel_id,
            )
            return None

        logger.debug(message)
        started_at = datetime.now(timezone.utc).isoformat()
        started = time.monotonic()
        event = self.events.initiate(event_type.value, channel_id, message, 0)
        mutations: list[Mutation] = []
        resource_included = False

        try:
            with self._operation(mutations) as ctx:
                resource_included = work(ctx, event)
                if not event.is_error:
                    complete(ctx, resource_included)
        except Exception as exc:
            logger.error("Exception in %s: %s", event_type.value, exc, exc_info=True)
            self.events.update(event, str(exc), is_error=True)

        logger.info(
            "%s done for channel %d, took %.3fs",
            event_type.value,
            channel_id,
            time.monotonic() - started,
        )
        if not event.is_error:
            self.events.update(event, f"{event_type.value} complete", 100)

        return ChangeReport(
            event=event_type,
            channel_id=channel_id,
            entity_id=entity_id,
            success=not event.is_error,
            error=event.message if event.is_error else None,
            resource_included=resource_included,
            mutations=mutations,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    def _import_completed(self, event_type: ImportCompletedEventType) -> Completion:
        def complete(ctx: OperationContext, resource_included: bool) -> None:
            self.client.import_update_completed(
                ctx.channel_name, event_type.value, resource_included
            )

        return complete

    def _delete_completed(self, event_type: DeleteCompletedEventType) -> Completion:
        def complete(ctx: OperationContext, resource_included: bool) -> None:
            self.client.delete_completed(ctx.channel_name, event_type.value)

        return complete

    # ------------------------------------------------------------------
    # Entity events
    # ------------------------------------------------------------------

    def channel_entity_added(
        self, channel_id: int, entity_id: int
    ) -> ChangeReport | None:
        """Import a new entity with its parents, children and grandchildren."""

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            cache = ctx.cache
            added = cache.get_structure_entities_for_entity(entity_id)
            for row in added:
                parent = cache.get_parent_structure_entity(
                    row.parent_id, row.entity_id, added
                )
                if parent is not None:
                    ctx.add_structure_entities([parent])
            ctx.add_structure_entities(added)

            path = target_entity_path(entity_id, added)
            children = cache.get_children_entities_in_channel(entity_id, path)
            for child in children:
                ctx.add_structure_entities(
                    cache.get_children_entities_in_channel(
                        child.entity_id, child.path
                    )
                )
            ctx.add_structure_entities(children)
            return self.adder.add(ctx, event)

        return self._handle(
            ChangeEventType.ENTITY_ADDED,
            channel_id,
            entity_id,
            f"Received entity added for entity {entity_id} in channel {channel_id}",
            work,
            self._import_completed(ImportCompletedEventType.ENTITY_ADDED),
        )

    def channel_entity_updated(
        self, channel_id: int, entity_id: int, data: str | None = None
    ) -> ChangeReport | None:
        """Propagate changed entity fields.

        Args:
            channel_id: Channel the change happened in.
            entity_id: Updated entity.
            data: Comma-separated names of the changed fields, if known.
        """
        return self._entity_updated(
            ChangeEventType.ENTITY_UPDATED, channel_id, entity_id, data
        )

    def _entity_updated(
        self,
        event_type: ChangeEventType,
        channel_id: int,
        entity_id: int,
        data: str | None,
    ) -> ChangeReport | None:
        message = (
            f"Received entity update for entity {entity_id} in channel {channel_id}"
        )
        if channel_id == self.channel_id and entity_id == channel_id:
            started_at = datetime.now(timezone.utc).isoformat()
            event = self.events.initiate(event_type.value, channel_id, message)
            self.events.update(
                event, "Updated entity is the channel, no action required", 100
            )
            return ChangeReport(
                event=event_type,
                channel_id=channel_id,
                entity_id=entity_id,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )

        changed_fields = [f.strip() for f in (data or "").split(",") if f.strip()]

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            entity = ctx.cache.get_entity(entity_id, LoadLevel.DATA_AND_LINKS)
            if entity is None:
                self.events.update(
                    event,
                    f"Could not find entity with id: {entity_id}",
                    is_error=True,
                )
                return False
            logger.debug(
                "Updated entity found. Type: %s, id: %d",
                entity.entity_type_id,
                entity.id,
            )
            rows = ctx.cache.get_structure_entities_for_entity(entity_id)
            ctx.add_structure_entities(rows)

            match entity.kind:
                case EntityKind.RESOURCE:
                    return self._update_resource(ctx, event, entity)
                case EntityKind.CHANNEL_NODE:
                    for row in rows:
                        ctx.add_structure_entities(
                            ctx.cache.get_structure_entities_from_path(row.path)
                        )
                    return self.adder.add(ctx, event)
                case EntityKind.ITEM if self.config.sku_field_name in changed_fields:
                    resource_included = self._update_skus(ctx, event, entity)
                    if event.is_error:
                        return resource_included
                    self._update_entity(ctx, event, entity)
                    return resource_included
                case _:
                    self._update_entity(ctx, event, entity)
                    return False

        return self._handle(
            event_type,
            channel_id,
            entity_id,
            message,
            work,
            self._import_completed(ImportCompletedEventType.ENTITY_UPDATED),
        )

    def _update_resource(
        self, ctx: OperationContext, event: ConnectorEvent, resource: Entity
    ) -> bool:
        parent_codes: list[str] = []
        for row in ctx.cache.get_resource_locations(resource.id):
            code = ctx.mapping.code(row.parent_id)
            if code not in parent_codes:
                parent_codes.append(code)

        element = resource_element(
            resource, RESOURCE_UPDATED, parent_codes, ctx.mapping
        )
        payload = serialize(resources_document([element]))
        code = ctx.mapping.code(resource.id)
        if not self.client.import_resources(payload):
            ctx.record(
                MutationAction.UPDATE_RESOURCE,
                code,
                success=False,
                error="resource import failed",
            )
            self.events.update(
                event, "Error while sending resource update", is_error=True
            )
            return False
        ctx.record(MutationAction.UPDATE_RESOURCE, code)
        send_document(ctx, self.client, "resources", payload)
        return True

    def _update_skus(
        self, ctx: OperationContext, event: ConnectorEvent, item: Entity
    ) -> bool:
        """Delete removed SKUs and import added ones; unchanged SKUs are left alone."""
        field_name = self.config.sku_field_name
        current = self.source.get_field(item.id, field_name)
        history = self.source.get_field_history(item.id, field_name)
        previous = None
        if current is not None:
            previous = next(
                (f for f in history if f.revision == current.revision - 1), None
            )

        to_add, to_delete = diff_sku_ids(
            previous.data if previous is not None else None,
            current.data if current is not None else None,
        )
        logger.info(
            "SKU change on item %d: %d added, %d removed",
            item.id,
            len(to_add),
            len(to_delete),
        )

        for sku in to_delete:
            code = ctx.mapping.code(sku)
            ok = self.client.delete_catalog_entry(code)
            ctx.record(
                MutationAction.DELETE_ENTRY,
                code,
                success=ok,
                error=None if ok else "entry delete rejected",
                detail=f"sku of {ctx.mapping.code(item.id)}",
            )

        if to_add:
            return self.adder.add(ctx, event, skus=to_add)
        return False

    def _update_entity(
        self, ctx: OperationContext, event: ConnectorEvent, entity: Entity
    ) -> None:
        mapping = ctx.mapping
        if entity.is_link_entity_type:
            links = self.source.get_links_for_link_entity(entity.id)
            if links:
                parent_code = mapping.code(links[0].source.id)
                ok = self.client.update_link_entity_data(
                    ctx.channel_name,
                    parent_code,
                    mapping.code(entity.id),
                    mapping.entity_name(entity),
                )
                ctx.record(
                    MutationAction.UPDATE_LINK_ENTITY,
                    mapping.code(entity.id),
                    success=ok,
                    error=None if ok else "link entity update rejected",
                    detail=f"parent={parent_code}",
                )

        payload = serialize(update_document(ctx.channel, entity, mapping))
        code = mapping.code(entity.id)
        if not self.client.import_catalog(payload, mapping.channel_guid):
            ctx.record(
                MutationAction.IMPORT_CATALOG,
                code,
                success=False,
                error="catalog import failed",
            )
            self.events.update(
                event, "Error while sending update document", is_error=True
            )
            return
        ctx.record(MutationAction.IMPORT_CATALOG, code, detail="update")
        send_document(ctx, self.client, "catalog", payload)

    def channel_entity_deleted(
        self, channel_id: int, deleted_entity: Entity
    ) -> ChangeReport | None:
        """Delete an entity and whatever only it kept in the channel.

        Args:
            channel_id: Channel the deletion happened in.
            deleted_entity: Snapshot of the deleted entity with its links.
        """

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            self.deleter.delete(ctx, NO_PARENT, deleted_entity, None)
            return False

        return self._handle(
            ChangeEventType.ENTITY_DELETED,
            channel_id,
            deleted_entity.id,
            f"Received entity deleted for entity {deleted_entity.id} "
            f"in channel {channel_id}",
            work,
            self._delete_completed(DeleteCompletedEventType.ENTITY_DELETED),
        )

    def channel_entity_field_set_updated(
        self, channel_id: int, entity_id: int, field_set_id: str | None = None
    ) -> ChangeReport | None:
        return self._entity_updated(
            ChangeEventType.FIELD_SET_UPDATED, channel_id, entity_id, None
        )

    def channel_entity_specification_field_added(
        self, channel_id: int, entity_id: int, field_name: str | None = None
    ) -> ChangeReport | None:
        return self._entity_updated(
            ChangeEventType.SPECIFICATION_FIELD_ADDED, channel_id, entity_id, None
        )

    def channel_entity_specification_field_updated(
        self, channel_id: int, entity_id: int, field_name: str | None = None
    ) -> ChangeReport | None:
        return self._entity_updated(
            ChangeEventType.SPECIFICATION_FIELD_UPDATED, channel_id, entity_id, None
        )

    # ------------------------------------------------------------------
    # Link events
    # ------------------------------------------------------------------

    def channel_link_added(
        self,
        channel_id: int,
        source_entity_id: int,
        target_entity_id: int,
        link_type_id: str,
        link_entity_id: int | None = None,
    ) -> ChangeReport | None:
        """Import the linked target with its ancestors and descendants."""

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            cache = ctx.cache
            self.events.update(event, "Fetching channel entities...", 1)
            existing = cache.get_structure_entities_for_entity(target_entity_id)
            if not existing:
                logger.warning(
                    "Target %d not found in channel %d structure",
                    target_entity_id,
                    channel_id,
                )

            parents: list[StructureEntity] = []
            for row in existing:
                for entity_id, parent_id in ancestor_pairs(row):
                    parents.extend(
                        cache.get_entity_in_channel_with_parent(entity_id, parent_id)
                    )

            children: list[StructureEntity] = []
            for row in existing:
                path = target_entity_path(row.entity_id, existing, row.parent_id)
                children.extend(cache.get_structure_entities_from_path(path))

            ctx.add_structure_entities(unique_by_entity_id(parents + children))
            # An entity reachable along several paths keeps all its rows.
            ctx.add_structure_entities(existing)
            self.events.update(event, "Done fetching channel entities", 10)
            return self.adder.add(ctx, event)

        return self._handle(
            ChangeEventType.LINK_ADDED,
            channel_id,
            target_entity_id,
            f"Received link added for source {source_entity_id} and target "
            f"{target_entity_id} in channel {channel_id}",
            work,
            self._import_completed(ImportCompletedEventType.LINK_ADDED),
        )

    def channel_link_updated(
        self,
        channel_id: int,
        source_entity_id: int,
        target_entity_id: int,
        link_type_id: str,
        link_entity_id: int | None = None,
    ) -> ChangeReport | None:
        """Re-import the link's source position and its direct children."""

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            cache = ctx.cache
            self.events.update(event, "Fetching channel entities...", 1)
            target_rows = cache.get_entity_in_channel_with_parent(
                target_entity_id, source_entity_id
            )
            parent_row = cache.get_parent_structure_entity(
                source_entity_id, target_entity_id, target_rows
            )
            if parent_row is None:
                message = (
                    f"Not possible to locate source entity {source_entity_id} "
                    f"in channel structure for target entity {target_entity_id}"
                )
                logger.error(message)
                self.events.update(event, message, is_error=True)
                return False

            ctx.add_structure_entities([parent_row])
            ctx.add_structure_entities(
                cache.get_children_entities_in_channel(
                    parent_row.entity_id, parent_row.path
                )
            )
            self.events.update(event, "Done fetching channel entities", 10)
            return self.adder.add(ctx, event)

        return self._handle(
            ChangeEventType.LINK_UPDATED,
            channel_id,
            target_entity_id,
            f"Received link update for source {source_entity_id} and target "
            f"{target_entity_id} in channel {channel_id}",
            work,
            self._import_completed(ImportCompletedEventType.LINK_UPDATED),
        )

    def channel_link_deleted(
        self,
        channel_id: int,
        source_entity_id: int,
        target_entity_id: int,
        link_type_id: str,
        link_entity_id: int | None = None,
    ) -> ChangeReport | None:
        """Unlink, relink or delete the target of a removed link."""

        def work(ctx: OperationContext, event: ConnectorEvent) -> bool:
            target = ctx.cache.get_entity(target_entity_id, LoadLevel.DATA_AND_LINKS)
            if target is None:
                self.events.update(
                    event,
                    f"Could not find entity with id: {target_entity_id}",
                    is_error=True,
                )
                return False
            self.deleter.delete(ctx, source_entity_id, target, link_type_id)
            return False

        return self._handle(
            ChangeEventType.LINK_DELETED,
            channel_id,
            target_entity_id,
            f"Received link deleted for source {source_entity_id} and target "
            f"{target_entity_id} in channel {channel_id}",
            work,
            self._delete_completed(DeleteCompletedEventType.LINK_DELETED),
        )
