"""Catalog codes, entry types and link-type classification.

Maps source identities onto target catalog identities and classifies
every link type exactly once into a ``LinkKind``:

- **channel-node link**: the source type is ``Channel`` or ``ChannelNode``.
- **relation**: hierarchical parent/child between two entry types. For a
  given (source type, target type) pair only the link type with the
  lowest index is a relation; links to resources are relations too.
- **association**: everything else (cross-sell, accessories, ...).

Explicit ``relation_link_types`` / ``association_link_types`` settings
override the rules. Unknown link type ids are treated as associations.
"""

from __future__ import annotations

import logging
import uuid

from ..config import Config
from .models import Entity, EntityKind, LinkKind, LinkType, StructureEntity

logger = logging.getLogger(__name__)

_NODE_SOURCE_KINDS = {EntityKind.CHANNEL, EntityKind.CHANNEL_NODE}

_NON_ENTRY_KINDS = {
    EntityKind.CHANNEL,
    EntityKind.CHANNEL_NODE,
    EntityKind.RESOURCE,
    EntityKind.SPECIFICATION,
}

MAX_NAME_LENGTH = 100


class CatalogMapping:
    """Identity and classification rules for one channel.

    Built once per router from the source model's link types, then used
    (never recomputed) by the resolver and the propagators.

    Args:
        config: Channel settings (prefix and bundle/package types).
        link_types: All link types defined in the source model.
    """

    def __init__(self, config: Config, link_types: list[LinkType]) -> None:
        self.config = config
        self.link_types: dict[str, LinkType] = {lt.id: lt for lt in link_types}
        self._kinds: dict[str, LinkKind] = self._classify(link_types)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    def code(self, entity_id: int | str) -> str:
        """Return the catalog code for an entity id or SKU id."""
        return f"{self.config.channel_id_prefix}{entity_id}"

    def entity_guid(self, entity_id: int) -> str:
        """Deterministic GUID for an entity within this channel."""
        return channel_entity_guid(self.config.channel_id, entity_id)

    @property
    def channel_guid(self) -> str:
        return channel_entity_guid(
            self.config.channel_id, self.config.channel_id
        )

    def entity_name(self, entity: Entity) -> str:
        name = entity.display_name or str(entity.id)
        return name[:MAX_NAME_LENGTH]

    # ------------------------------------------------------------------
    # Entry types
    # ------------------------------------------------------------------

    def entry_type(self, entity_type_id: str) -> str:
        """Map a source entity type onto a catalog entry type."""
        if entity_type_id == EntityKind.ITEM.value:
            return "Variation"
        if self.is_bundle_type(entity_type_id):
            return "Bundle"
        if self.is_package_type(entity_type_id):
            return "Package"
        if self.is_dynamic_package_type(entity_type_id):
            return "DynamicPackage"
        return "Product"

    def relation_type(self, parent_entity_type_id: str) -> str:
        """Catalog relation type between a parent entry and its child."""
        if self.is_package_type(
            parent_entity_type_id
        ) or self.is_dynamic_package_type(parent_entity_type_id):
            return "PackageEntry"
        if self.is_bundle_type(parent_entity_type_id):
            return "BundleEntry"
        return "ProductVariation"

    def is_bundle_type(self, entity_type_id: str) -> bool:
        return entity_type_id == EntityKind.BUNDLE.value or (
            entity_type_id in self.config.bundle_entity_types
        )

    def is_package_type(self, entity_type_id: str) -> bool:
        return entity_type_id == EntityKind.PACKAGE.value or (
            entity_type_id in self.config.package_entity_types
        )

    def is_dynamic_package_type(self, entity_type_id: str) -> bool:
        return entity_type_id == EntityKind.DYNAMIC_PACKAGE.value or (
            entity_type_id in self.config.dynamic_package_entity_types
        )

    def is_entry_type(self, entity_type_id: str) -> bool:
        return EntityKind.from_type_id(entity_type_id) not in _NON_ENTRY_KINDS

    # ------------------------------------------------------------------
    # Link classification
    # ------------------------------------------------------------------

    def _classify(self, link_types: list[LinkType]) -> dict[str, LinkKind]:
        first_for_pair: dict[tuple[str, str], LinkType] = {}
        for lt in sorted(link_types, key=lambda lt: lt.index):
            pair = (lt.source_entity_type_id, lt.target_entity_type_id)
            first_for_pair.setdefault(pair, lt)

        kinds: dict[str, LinkKind] = {}
        for lt in link_types:
            source_kind = EntityKind.from_type_id(lt.source_entity_type_id)
            target_kind = EntityKind.from_type_id(lt.target_entity_type_id)
            pair = (lt.source_entity_type_id, lt.target_entity_type_id)

            if lt.id in self.config.relation_link_types:
                kinds[lt.id] = LinkKind.RELATION
            elif lt.id in self.config.association_link_types:
                kinds[lt.id] = LinkKind.ASSOCIATION
            elif source_kind in _NODE_SOURCE_KINDS:
                kinds[lt.id] = LinkKind.CHANNEL_NODE
            elif target_kind == EntityKind.RESOURCE:
                kinds[lt.id] = LinkKind.RELATION
            elif (
                self.is_entry_type(lt.source_entity_type_id)
                and self.is_entry_type(lt.target_entity_type_id)
                and first_for_pair[pair].id == lt.id
            ):
                kinds[lt.id] = LinkKind.RELATION
            else:
                kinds[lt.id] = LinkKind.ASSOCIATION

        logger.debug(
            "Classified %d link types: %s",
            len(kinds),
            {k: v.value for k, v in kinds.items()},
        )
        return kinds

    def link_kind(self, link_type_id: str | None) -> LinkKind | None:
        if not link_type_id:
            return None
        return self._kinds.get(link_type_id, LinkKind.ASSOCIATION)

    def is_relation(self, link_type_id: str | None) -> bool:
        return self.link_kind(link_type_id) == LinkKind.RELATION

    def is_channel_node_link(self, link_type_id: str | None) -> bool:
        return self.link_kind(link_type_id) == LinkKind.CHANNEL_NODE

    def has_link_entity(self, link_type_id: str | None) -> bool:
        lt = self.link_types.get(link_type_id or "")
        return lt is not None and lt.has_link_entity

    def belongs_in_channel(self, row: StructureEntity) -> bool:
        """True when the row hangs below its parent through a hierarchical link."""
        if row.kind == EntityKind.CHANNEL:
            return True
        return self.is_relation(
            row.link_type_id_from_parent
        ) or self.is_channel_node_link(row.link_type_id_from_parent)


def channel_entity_guid(channel_id: int, entity_id: int) -> str:
    """Build a GUID from zero-padded channel and entity ids.

    >>> channel_entity_guid(12, 345)
    '00000000-0000-0012-0000-000000000345'
    """
    return str(uuid.UUID(f"{channel_id:016d}{entity_id:016d}"))
