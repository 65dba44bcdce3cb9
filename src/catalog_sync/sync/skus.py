"""SKU fan-out helpers.

An item's SKU field holds XML of the form::

    <SKUs>
      <SKU id="A"><Name>Small</Name></SKU>
      <SKU id="B"/>
    </SKUs>

With ``items_to_skus`` enabled every SKU becomes its own catalog entry,
coded ``prefix + sku id``.
"""

from __future__ import annotations

import logging

from lxml import etree

from .models import Entity

logger = logging.getLogger(__name__)


def parse_sku_elements(xml: str | None) -> list[etree._Element]:
    """Return the ``SKU`` elements of a SKU field value.

    Unparsable XML is logged and treated as no SKUs.
    """
    if not xml or not str(xml).strip():
        return []
    try:
        root = etree.fromstring(str(xml).encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        logger.warning("Ignoring malformed SKU XML: %s", exc)
        return []
    return [el for el in root.iter("SKU") if el.get("id")]


def parse_sku_ids(xml: str | None) -> list[str]:
    """Return SKU ids in document order, without duplicates."""
    ids: list[str] = []
    for el in parse_sku_elements(xml):
        sku_id = el.get("id")
        if sku_id not in ids:
            ids.append(sku_id)
    return ids


def sku_item_ids(item: Entity, field_name: str) -> list[str]:
    """Ids the item fans out into; the item id itself when it has no SKUs."""
    field = item.get_field(field_name)
    if field is None or field.is_empty:
        return [str(item.id)]
    ids = parse_sku_ids(field.data)
    return ids or [str(item.id)]


def diff_sku_ids(
    old_xml: str | None, new_xml: str | None
) -> tuple[list[str], list[str]]:
    """Symmetric difference between two SKU field values.

    Returns:
        ``(to_add, to_delete)``: ids only in the new value, and ids only
        in the old value. Ids present in both are left alone.
    """
    old_ids = parse_sku_ids(old_xml)
    new_ids = parse_sku_ids(new_xml)
    to_add = [sku for sku in new_ids if sku not in old_ids]
    to_delete = [sku for sku in old_ids if sku not in new_ids]
    return to_add, to_delete
