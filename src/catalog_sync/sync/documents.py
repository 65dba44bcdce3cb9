"""Document assembly for the target import API.

Builds lxml element trees for:

- catalog import documents (nodes, entries, relations, associations),
- action documents (``deleted`` / ``updated``) listing affected entry
  codes below the lineage of the parent they were removed from,
- resource documents (added, updated, unlinked, deleted resources).

Builders are pure: ``(Entity | StructureEntity, mapping) -> element``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from lxml import etree

from .mapping import CatalogMapping
from .models import Entity, EntityKind, StructureEntity
from .skus import parse_sku_elements

logger = logging.getLogger(__name__)

ACTION_DELETED = "deleted"
ACTION_UPDATED = "updated"

RESOURCE_ADDED = "added"
RESOURCE_UPDATED = "updated"
RESOURCE_UNLINKED = "unlinked"
RESOURCE_DELETED = "deleted"


@dataclass
class CatalogElements:
    """Element lists of one catalog import document."""

    nodes: list[etree._Element] = field(default_factory=list)
    entries: list[etree._Element] = field(default_factory=list)
    relations: list[etree._Element] = field(default_factory=list)
    associations: list[etree._Element] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "nodes": len(self.nodes),
            "entries": len(self.entries),
            "relations": len(self.relations),
            "associations": len(self.associations),
        }


def _sub(parent: etree._Element, tag: str, text: Any = None) -> etree._Element:
    el = etree.SubElement(parent, tag)
    if text is not None:
        el.text = str(text)
    return el


def _meta_fields(parent: etree._Element, entity: Entity) -> None:
    meta = _sub(parent, "MetaData")
    _sub(_sub(meta, "MetaClass"), "Name", entity.entity_type_id)
    fields = _sub(meta, "MetaFields")
    for f in entity.fields.values():
        if f.is_empty:
            continue
        meta_field = _sub(fields, "MetaField")
        _sub(meta_field, "Name", f.name)
        _sub(meta_field, "Type", f.data_type)
        if isinstance(f.data, dict):
            for language, value in f.data.items():
                data = _sub(meta_field, "Data")
                data.set("language", str(language))
                data.set("value", "" if value is None else str(value))
        else:
            _sub(meta_field, "Data").set("value", str(f.data))


# ---------------------------------------------------------------------------
# Catalog elements
# ---------------------------------------------------------------------------


def node_element(
    entity: Entity,
    parent_id: int | None,
    sort_order: int,
    mapping: CatalogMapping,
) -> etree._Element:
    """Catalog node for a channel node; no parent code directly below the channel."""
    node = etree.Element("Node")
    _sub(node, "Name", mapping.entity_name(entity))
    _sub(node, "IsActive", not entity.is_link_entity_type)
    _sub(node, "SortOrder", sort_order)
    _sub(node, "Guid", mapping.entity_guid(entity.id))
    _sub(node, "Code", mapping.code(entity.id))
    _meta_fields(node, entity)
    _sub(node, "ParentNode", mapping.code(parent_id) if parent_id else None)
    return node


def entry_element(
    entity: Entity,
    mapping: CatalogMapping,
    code: str | None = None,
    name: str | None = None,
    entry_type: str | None = None,
) -> etree._Element:
    entry = etree.Element("Entry")
    _sub(entry, "Name", name or mapping.entity_name(entity))
    _sub(entry, "IsActive", True)
    _sub(entry, "Code", code or mapping.code(entity.id))
    _sub(entry, "EntryType", entry_type or mapping.entry_type(entity.entity_type_id))
    _sub(entry, "Guid", mapping.entity_guid(entity.id))
    _meta_fields(entry, entity)
    return entry


def sku_entry_elements(
    item: Entity, mapping: CatalogMapping, field_name: str
) -> list[etree._Element]:
    """One ``Variation`` entry per SKU in the item's SKU field."""
    elements = []
    for sku in parse_sku_elements(item.field_value(field_name)):
        sku_id = sku.get("id")
        name = sku.findtext("Name") or sku_id
        elements.append(
            entry_element(
                item,
                mapping,
                code=mapping.code(sku_id),
                name=name,
                entry_type="Variation",
            )
        )
    return elements


def node_entry_relation(
    node_id: int, entry_code: str, sort_order: int, mapping: CatalogMapping
) -> etree._Element:
    rel = etree.Element("NodeEntryRelation")
    _sub(rel, "EntryCode", entry_code)
    _sub(rel, "NodeCode", mapping.code(node_id))
    _sub(rel, "SortOrder", sort_order)
    return rel


def node_relation(
    parent_node_id: int,
    child_node_id: int,
    sort_order: int,
    mapping: CatalogMapping,
) -> etree._Element:
    rel = etree.Element("NodeRelation")
    _sub(rel, "ChildNodeCode", mapping.code(child_node_id))
    _sub(rel, "ParentNodeCode", mapping.code(parent_node_id))
    _sub(rel, "SortOrder", sort_order)
    return rel


def entry_relation(
    parent_code: str,
    parent_entity_type_id: str,
    child_code: str,
    sort_order: int,
    mapping: CatalogMapping,
) -> etree._Element:
    rel = etree.Element("EntryRelation")
    _sub(rel, "ParentEntryCode", parent_code)
    _sub(rel, "ChildEntryCode", child_code)
    _sub(rel, "RelationType", mapping.relation_type(parent_entity_type_id))
    _sub(rel, "Quantity", 0)
    _sub(rel, "GroupName", "default")
    _sub(rel, "SortOrder", sort_order)
    return rel


def catalog_association(
    row: StructureEntity, mapping: CatalogMapping
) -> etree._Element:
    """Association from the row's parent entry to the row's entry.

    The description carries the link entity code, or the link type id
    when the link has no link entity.
    """
    if row.link_entity_id is not None:
        description = mapping.code(row.link_entity_id)
    else:
        description = row.link_type_id_from_parent or ""

    assoc = etree.Element("CatalogAssociation")
    _sub(assoc, "Name", row.link_type_id_from_parent)
    _sub(assoc, "Description", description)
    _sub(assoc, "SortOrder", row.sort_order)
    _sub(assoc, "EntryCode", mapping.code(row.parent_id))
    target = _sub(assoc, "Association")
    _sub(target, "EntryCode", mapping.code(row.entity_id))
    _sub(target, "SortOrder", row.sort_order)
    _sub(target, "Type", row.link_type_id_from_parent)
    return assoc


def catalog_document(
    channel: Entity, elements: CatalogElements, mapping: CatalogMapping
) -> etree._Element:
    """Catalog import document for one channel."""
    root = etree.Element("Catalogs", version="1.0")
    catalog = _sub(root, "Catalog")
    catalog.set("name", mapping.entity_name(channel))
    catalog.set("code", mapping.code(channel.id))
    catalog.set("guid", mapping.channel_guid)
    if channel.last_modified:
        catalog.set("lastmodified", channel.last_modified)
    catalog.set("sortOrder", "0")
    catalog.set("isActive", "True")

    for tag, items in (
        ("Nodes", elements.nodes),
        ("Entries", elements.entries),
        ("Relations", elements.relations),
        ("Associations", elements.associations),
    ):
        container = _sub(catalog, tag)
        container.set("totalCount", str(len(items)))
        container.extend(items)
    return root


def update_document(
    channel: Entity, entity: Entity, mapping: CatalogMapping
) -> etree._Element:
    """Catalog document carrying only the updated node or entry."""
    elements = CatalogElements()
    if entity.kind == EntityKind.CHANNEL_NODE:
        elements.nodes.append(node_element(entity, None, 0, mapping))
    else:
        elements.entries.append(entry_element(entity, mapping))
    return catalog_document(channel, elements, mapping)


# ---------------------------------------------------------------------------
# Action documents
# ---------------------------------------------------------------------------


def action_document(
    action: str, lineage: list[Entity], mapping: CatalogMapping
) -> etree._Element:
    """Root of a ``deleted`` or ``updated`` document.

    Args:
        action: ``ACTION_DELETED`` or ``ACTION_UPDATED``.
        lineage: Ancestors of the parent, root first, parent last.
        mapping: Code mapping.
    """
    root = etree.Element(action)
    ancestors = _sub(root, "lineage")
    for entity in lineage:
        ancestor = _sub(ancestors, "ancestor")
        ancestor.set("id", str(entity.id))
        ancestor.set("type", entity.entity_type_id)
        ancestor.set("code", mapping.code(entity.id))
    return root


def add_entry(document: etree._Element, code: str) -> None:
    """Append an ``entry`` code unless the document already lists it."""
    if code not in entry_codes(document):
        _sub(document, "entry", code)


def entry_codes(document: etree._Element) -> list[str]:
    return [el.text for el in document.findall("entry") if el.text]


# ---------------------------------------------------------------------------
# Resource documents
# ---------------------------------------------------------------------------


def resource_element(
    resource: Entity,
    action: str,
    parent_codes: list[str],
    mapping: CatalogMapping,
) -> etree._Element:
    el = etree.Element("Resource")
    el.set("id", mapping.entity_guid(resource.id))
    el.set("code", mapping.code(resource.id))
    el.set("action", action)
    if action in (RESOURCE_ADDED, RESOURCE_UPDATED):
        _meta_fields(el, resource)
    parents = _sub(el, "ParentEntries")
    for code in parent_codes:
        _sub(parents, "EntryCode", code)
    return el


def resources_document(
    resources: list[etree._Element],
) -> etree._Element:
    root = etree.Element("Resources")
    files = _sub(root, "ResourceFiles")
    files.set("totalCount", str(len(resources)))
    files.extend(resources)
    return root


def resource_unlink_document(
    resource: Entity, parent_id: int, mapping: CatalogMapping
) -> etree._Element:
    """Remove one resource from one parent entry, keeping the resource."""
    return resources_document(
        [
            resource_element(
                resource, RESOURCE_UNLINKED, [mapping.code(parent_id)], mapping
            )
        ]
    )


def resource_delete_document(
    resource_ids: list[int], mapping: CatalogMapping
) -> etree._Element:
    root = etree.Element("Resources")
    files = _sub(root, "ResourceFiles")
    files.set("totalCount", str(len(resource_ids)))
    for resource_id in resource_ids:
        el = _sub(files, "Resource")
        el.set("id", mapping.entity_guid(resource_id))
        el.set("code", mapping.code(resource_id))
        el.set("action", RESOURCE_DELETED)
    return root


def resource_codes(document: etree._Element, action: str) -> list[str]:
    """Codes of the resources in a resources document with one action."""
    return [
        el.get("code")
        for el in document.iter("Resource")
        if el.get("action") == action
    ]


def serialize(document: etree._Element) -> bytes:
    return etree.tostring(
        document, xml_declaration=True, encoding="utf-8", pretty_print=True
    )
