"""Incremental catalog sync engine.

Public API for propagating single change events from a source product
hierarchy (channel, channel nodes, entries, links, resources) into a
target commerce catalog without a full re-export.

Architecture
------------
Every change event is one independent unit of work.  The router opens an
``OperationContext`` holding a fresh ``StructureCache``, collects the
structure rows the event affects, runs the add or delete propagator, and
closes the context (flushing the cache) whether the work succeeded or not.
Nothing cached survives an operation.

Modules:

- ``models``     -- ``Entity``, ``StructureEntity``, ``Link``, ``Mutation``,
  ``ChangeReport`` and the enums they use.
- ``mapping``    -- ``CatalogMapping``: catalog codes, GUIDs, entry types and
  link-type classification.
- ``skus``       -- SKU fan-out parsing and diffing.
- ``cache``      -- ``StructureCache``: per-operation memo of source lookups.
- ``hierarchy``  -- Pure hierarchy questions over structure rows.
- ``context``    -- ``OperationContext``: state owned by one operation.
- ``documents``  -- Catalog, action and resource documents (lxml).
- ``events``     -- ``EventReporter``: connector progress events.
- ``add``        -- ``AddPropagator``: project rows onto one import batch.
- ``delete``     -- ``DeletePropagator``: cycle-safe delete/relink/unlink.
- ``router``     -- ``ChangeRouter``: one handler per change event.
- ``reporter``   -- Human-readable and JSON report formatting.

Public exports
--------------
``ChangeRouter``, ``AddPropagator``, ``DeletePropagator``,
``StructureCache``, ``CatalogMapping``, ``OperationContext``,
``EventReporter``, the models, ``format_change_report`` and
``report_to_json``.

Usage example
-------------
::

    from catalog_sync.config import load_config
    from catalog_sync.core import CatalogClient, SourceClient
    from catalog_sync.sync import ChangeRouter, format_change_report

    config = load_config()
    router = ChangeRouter(SourceClient(config), CatalogClient(config), config)

    report = router.channel_link_deleted(
        config.channel_id, source_entity_id=12, target_entity_id=345,
        link_type_id="ChannelNodeProducts",
    )
    if report is not None:
        print(format_change_report(report))
"""

from .add import AddPropagator
from .cache import StructureCache
from .context import OperationContext
from .delete import DeletePropagator
from .events import ConnectorEvent, EventReporter
from .mapping import CatalogMapping
from .models import (
    ChangeEventType,
    ChangeReport,
    Entity,
    EntityKind,
    Link,
    LinkKind,
    LinkType,
    LoadLevel,
    Mutation,
    MutationAction,
    StructureEntity,
)
from .reporter import format_change_report, format_events, report_to_json
from .router import ChangeRouter, ChannelNotFoundError

__all__ = [
    "AddPropagator",
    "CatalogMapping",
    "ChangeEventType",
    "ChangeReport",
    "ChangeRouter",
    "ChannelNotFoundError",
    "ConnectorEvent",
    "DeletePropagator",
    "Entity",
    "EntityKind",
    "EventReporter",
    "Link",
    "LinkKind",
    "LinkType",
    "LoadLevel",
    "Mutation",
    "MutationAction",
    "OperationContext",
    "StructureCache",
    "StructureEntity",
    "format_change_report",
    "format_events",
    "report_to_json",
]
