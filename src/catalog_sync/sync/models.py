"""Pydantic models for the incremental catalog sync engine.

Defines the data contracts shared by all sync modules:

- ``LoadLevel``: How much of an entity a fetch returns.
- ``EntityKind``: Closed set of entity kinds the engine branches on.
- ``LinkKind``: Classification of a link type.
- ``Field``, ``LinkType``, ``EntityRef``, ``Link``, ``Entity``: Source
  system snapshots, borrowed read-only for one operation.
- ``StructureEntity``: One materialized position of an entity in the
  channel hierarchy.
- ``MutationAction`` / ``Mutation``: One change emitted to the target.
- ``ChangeReport``: Aggregate outcome of one change event.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ValidationInfo, field_validator


class LoadLevel(IntEnum):
    """Fetch depth for an entity. Higher levels subsume lower ones."""

    SHALLOW = 0
    DATA_ONLY = 1
    DATA_AND_LINKS = 2


class EntityKind(str, Enum):
    """Known entity kinds. Custom types map to ``OTHER``."""

    CHANNEL = "Channel"
    CHANNEL_NODE = "ChannelNode"
    ITEM = "Item"
    PRODUCT = "Product"
    RESOURCE = "Resource"
    BUNDLE = "Bundle"
    PACKAGE = "Package"
    DYNAMIC_PACKAGE = "DynamicPackage"
    SPECIFICATION = "Specification"
    OTHER = "Other"

    @classmethod
    def from_type_id(cls, entity_type_id: str) -> EntityKind:
        try:
            kind = cls(entity_type_id)
        except ValueError:
            return cls.OTHER
        return kind


class LinkKind(str, Enum):
    """Classification of a link type; every link type has exactly one."""

    RELATION = "relation"
    CHANNEL_NODE = "channel_node"
    ASSOCIATION = "association"


class Field(BaseModel):
    """A named field value on an entity.

    Attributes:
        name: Field type id (e.g. ``ProductName``).
        data_type: Source data type (String, LocaleString, Xml, ...).
        data: Flat value, or ``{locale: value}`` for localized fields.
        revision: Revision number of this value.
    """

    name: str
    data_type: str = "String"
    data: Any = None
    revision: int = 0

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        if self.data is None:
            return True
        if isinstance(self.data, str):
            return not self.data.strip()
        if isinstance(self.data, dict):
            return not any(self.data.values())
        return False


class LinkType(BaseModel):
    """A link type definition from the source model.

    Attributes:
        id: Link type id.
        source_entity_type_id: Entity type at the link source.
        target_entity_type_id: Entity type at the link target.
        index: Position among link types; lower wins ties.
        link_entity_type_id: Entity type carrying link metadata, if any.
    """

    id: str
    source_entity_type_id: str
    target_entity_type_id: str
    index: int = 0
    link_entity_type_id: str | None = None

    model_config = {"frozen": True}

    @property
    def has_link_entity(self) -> bool:
        return bool(self.link_entity_type_id)


class EntityRef(BaseModel):
    """Identity of a link endpoint."""

    id: int
    entity_type_id: str

    model_config = {"frozen": True}

    @property
    def kind(self) -> EntityKind:
        return EntityKind.from_type_id(self.entity_type_id)


class Link(BaseModel):
    """A directed, typed link between two entities.

    Attributes:
        id: Link id in the source system, when known.
        link_type_id: Link type id.
        source: Source endpoint.
        target: Target endpoint.
        index: Sort order among sibling links.
        link_entity_id: Id of the link entity carrying metadata, if any.
    """

    id: int | None = None
    link_type_id: str
    source: EntityRef
    target: EntityRef
    index: int = 0
    link_entity_id: int | None = None

    model_config = {"frozen": True}


class Entity(BaseModel):
    """Read-only snapshot of a source entity.

    Attributes:
        id: Entity id.
        entity_type_id: Raw type tag from the source model.
        field_set_id: Field set assigned to the entity, if any.
        load_level: Depth this snapshot was fetched at.
        display_name: Display name, used for catalog names.
        is_link_entity_type: True when the type models link metadata.
        fields: Field values keyed by field type id.
        outbound_links: Outbound links (only at ``DATA_AND_LINKS``).
        last_modified: ISO 8601 timestamp of the last change.
    """

    id: int
    entity_type_id: str
    field_set_id: str | None = None
    load_level: LoadLevel = LoadLevel.SHALLOW
    display_name: str | None = None
    is_link_entity_type: bool = False
    fields: dict[str, Field] = {}
    outbound_links: list[Link] = []
    last_modified: str | None = None

    model_config = {"frozen": True}

    @property
    def kind(self) -> EntityKind:
        return EntityKind.from_type_id(self.entity_type_id)

    def get_field(self, name: str) -> Field | None:
        return self.fields.get(name)

    def field_value(self, name: str) -> Any:
        field = self.fields.get(name)
        return field.data if field is not None else None

    def ref(self) -> EntityRef:
        return EntityRef(id=self.id, entity_type_id=self.entity_type_id)


class StructureEntity(BaseModel):
    """A materialized position of an entity in the channel hierarchy.

    One entity has several rows when it is reachable via several paths.

    Attributes:
        entity_id: Entity at this position.
        parent_id: Parent entity along the path.
        path: "/"-separated ancestor ids, channel root first, ending with
            ``entity_id``.
        entity_type_id: Type tag of the entity.
        link_type_id_from_parent: Link type from the parent, if any.
        link_entity_id: Link entity on the parent link, if any.
        sort_order: Sort order below the parent.
    """

    entity_id: int
    parent_id: int
    path: str
    entity_type_id: str
    link_type_id_from_parent: str | None = None
    link_entity_id: int | None = None
    sort_order: int = 0

    model_config = {"frozen": True}

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str, info: ValidationInfo) -> str:
        segments = value.split("/")
        if not all(s.isdigit() for s in segments):
            raise ValueError(f"Malformed structure path '{value}'")
        entity_id = info.data.get("entity_id")
        if entity_id is not None and int(segments[-1]) != entity_id:
            raise ValueError(
                f"Structure path '{value}' does not end with entity {entity_id}"
            )
        return value

    @property
    def kind(self) -> EntityKind:
        return EntityKind.from_type_id(self.entity_type_id)

    @property
    def parent_path(self) -> str:
        return self.path.rpartition("/")[0]


class MutationAction(str, Enum):
    """Kinds of change emitted to the target catalog."""

    DELETE_CATALOG = "delete_catalog"
    DELETE_NODE = "delete_node"
    DELETE_ENTRY = "delete_entry"
    UPDATE_RELATIONS = "update_relations"
    UPDATE_LINK_ENTITY = "update_link_entity"
    IMPORT_CATALOG = "import_catalog"
    IMPORT_RESOURCES = "import_resources"
    UPDATE_RESOURCE = "update_resource"
    UNLINK_RESOURCE = "unlink_resource"
    DELETE_RESOURCE = "delete_resource"
    SEND_DOCUMENT = "send_document"


class Mutation(BaseModel):
    """One change sent (or attempted) against the target.

    Attributes:
        action: What was done.
        code: Target code the change applies to.
        success: Whether the target accepted the change.
        error: Error message if the change failed.
        detail: Extra context (parent code, document kind, ...).
    """

    action: MutationAction
    code: str
    success: bool = True
    error: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}


class ChangeEventType(str, Enum):
    """Inbound change events handled by the router."""

    ENTITY_ADDED = "channel_entity_added"
    ENTITY_UPDATED = "channel_entity_updated"
    ENTITY_DELETED = "channel_entity_deleted"
    LINK_ADDED = "channel_link_added"
    LINK_UPDATED = "channel_link_updated"
    LINK_DELETED = "channel_link_deleted"
    FIELD_SET_UPDATED = "channel_entity_field_set_updated"
    SPECIFICATION_FIELD_ADDED = "channel_entity_specification_field_added"
    SPECIFICATION_FIELD_UPDATED = "channel_entity_specification_field_updated"


class ImportCompletedEventType(str, Enum):
    """Event types reported with ``ImportUpdateCompleted``."""

    PUBLISH = "Publish"
    ENTITY_ADDED = "EntityAdded"
    ENTITY_UPDATED = "EntityUpdated"
    LINK_ADDED = "LinkAdded"
    LINK_UPDATED = "LinkUpdated"


class DeleteCompletedEventType(str, Enum):
    """Event types reported with ``DeleteCompleted``."""

    # Wire value expected by the import endpoint.
    ENTITY_DELETED = "EntitiyDeleted"
    LINK_DELETED = "LinkDeleted"


_DELETE_ACTIONS = {
    MutationAction.DELETE_CATALOG,
    MutationAction.DELETE_NODE,
    MutationAction.DELETE_ENTRY,
}

_RESOURCE_ACTIONS = {
    MutationAction.IMPORT_RESOURCES,
    MutationAction.UPDATE_RESOURCE,
    MutationAction.UNLINK_RESOURCE,
    MutationAction.DELETE_RESOURCE,
}


class ChangeReport(BaseModel):
    """Aggregate report for one handled change event.

    Attributes:
        event: Event that was handled.
        channel_id: Channel the event belonged to.
        entity_id: Entity (or link target) the event was about.
        success: False when the operation failed.
        error: Error message when the operation failed.
        resource_included: Whether resources were imported.
        mutations: Changes emitted to the target, in order.
        started_at: ISO 8601 timestamp when handling started.
        completed_at: ISO 8601 timestamp when handling finished.
    """

    event: ChangeEventType
    channel_id: int
    entity_id: int | None = None
    success: bool = True
    error: str | None = None
    resource_included: bool = False
    mutations: list[Mutation] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def deleted(self) -> list[Mutation]:
        """Catalog, node and entry deletions."""
        return [m for m in self.mutations if m.action in _DELETE_ACTIONS]

    @property
    def relinked(self) -> list[Mutation]:
        """Membership corrections."""
        return [
            m
            for m in self.mutations
            if m.action == MutationAction.UPDATE_RELATIONS
        ]

    @property
    def imported(self) -> list[Mutation]:
        """Catalog imports."""
        return [
            m
            for m in self.mutations
            if m.action == MutationAction.IMPORT_CATALOG
        ]

    @property
    def resource_mutations(self) -> list[Mutation]:
        return [m for m in self.mutations if m.action in _RESOURCE_ACTIONS]

    @property
    def errors(self) -> list[Mutation]:
        """Mutations the target rejected."""
        return [m for m in self.mutations if not m.success]

    def summary(self) -> str:
        """Format a human-readable summary of the change.

        Returns:
            Multi-line summary string with counts by action.
        """
        status = "ok" if self.success else f"failed: {self.error}"
        lines = [
            f"Change report for {self.event.value} "
            f"(channel {self.channel_id}, entity {self.entity_id}): {status}",
            f"  Deleted:   {len(self.deleted)}",
            f"  Relinked:  {len(self.relinked)}",
            f"  Imported:  {len(self.imported)}",
            f"  Resources: {len(self.resource_mutations)}",
            f"  Errors:    {len(self.errors)}",
            f"  Total:     {len(self.mutations)}",
        ]
        return "\n".join(lines)
