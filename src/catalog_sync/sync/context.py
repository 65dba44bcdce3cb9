"""Explicit per-operation context.

One ``OperationContext`` is created at the start of each change handler
and closed at its end. It owns the operation's ``StructureCache``, the
structure rows in scope, and the mutations emitted so far. Nothing in it
is shared between operations.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config import Config
from .cache import StructureCache
from .mapping import CatalogMapping
from .models import Entity, Mutation, MutationAction, StructureEntity

if TYPE_CHECKING:
    from ..core.client import CatalogClient

logger = logging.getLogger(__name__)


@dataclass
class OperationContext:
    """State of one change operation.

    Attributes:
        channel: The channel entity being synchronized.
        config: Channel settings.
        mapping: Codes and link classification.
        cache: Structure cache scoped to this operation.
        structure_entities: Rows in scope for the add propagator.
        mutations: Changes emitted to the target, in order.
    """

    channel: Entity
    config: Config
    mapping: CatalogMapping
    cache: StructureCache
    structure_entities: list[StructureEntity] = field(default_factory=list)
    mutations: list[Mutation] = field(default_factory=list)

    @property
    def channel_id(self) -> int:
        return self.channel.id

    @property
    def channel_name(self) -> str:
        return self.mapping.entity_name(self.channel)

    def add_structure_entities(self, rows: Iterable[StructureEntity]) -> None:
        """Add rows to the scope, skipping exact duplicates."""
        known = {(r.entity_id, r.parent_id, r.path) for r in self.structure_entities}
        for row in rows:
            key = (row.entity_id, row.parent_id, row.path)
            if key not in known:
                known.add(key)
                self.structure_entities.append(row)

    def record(
        self,
        action: MutationAction,
        code: str,
        success: bool = True,
        error: str | None = None,
        detail: str | None = None,
    ) -> Mutation:
        mutation = Mutation(
            action=action, code=code, success=success, error=error, detail=detail
        )
        self.mutations.append(mutation)
        if not success:
            logger.warning("%s %s failed: %s", action.value, code, error)
        return mutation

    def close(self) -> None:
        """Flush the cache and drop the scope."""
        self.cache.flush_cache()
        self.structure_entities.clear()


def send_document(
    ctx: OperationContext,
    client: CatalogClient,
    kind: str,
    document: bytes,
    detail: str | None = None,
) -> bool:
    """Hand a document to the listener and record it when posted."""
    if not client.post_document(kind, document):
        return False
    ctx.record(MutationAction.SEND_DOCUMENT, kind, detail=detail)
    return True
