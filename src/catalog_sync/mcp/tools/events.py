"""Change event tool handlers for MCP server.

One tool per inbound change event. Every handler validates its arguments,
runs the matching ``ChangeRouter`` handler in a worker thread (one at a
time per channel) and returns the change report as text plus structured
JSON.
"""

import logging
from typing import Any

import mcp.types as types
from pydantic import ValidationError

from ...core.async_utils import run_exclusive
from ...sync.models import ChangeReport, Entity
from ...sync.reporter import format_change_report, report_to_json
from ...sync.router import ChangeRouter
from .registry import ToolSpec

logger = logging.getLogger(__name__)

SYNC_WRITE = frozenset({"SYNC_WRITE"})

_WRITE_ANNOTATIONS = types.ToolAnnotations(
    readOnlyHint=False,
    destructiveHint=False,
    idempotentHint=True,
    openWorldHint=True,
)

_DELETE_ANNOTATIONS = types.ToolAnnotations(
    readOnlyHint=False,
    destructiveHint=True,
    idempotentHint=True,
    openWorldHint=True,
)

_CHANNEL_ID = {
    "type": "integer",
    "description": "Channel the change happened in. Events for other channels are ignored",
}

_ENTITY_ID = {"type": "integer", "description": "Changed entity id"}

_LINK_PROPERTIES = {
    "channel_id": _CHANNEL_ID,
    "source_entity_id": {"type": "integer", "description": "Link source entity id"},
    "target_entity_id": {"type": "integer", "description": "Link target entity id"},
    "link_type_id": {"type": "string", "description": "Link type id"},
    "link_entity_id": {
        "type": "integer",
        "description": "Link entity carrying link metadata, if any",
    },
}

_LINK_REQUIRED = ["channel_id", "source_entity_id", "target_entity_id", "link_type_id"]


# Tool definitions for list_tools()
EVENT_TOOLS = [
    types.Tool(
        name="channel_entity_added",
        description="Propagate an entity added to the channel. Imports the entity with its parent positions, children and grandchildren.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {"channel_id": _CHANNEL_ID, "entity_id": _ENTITY_ID},
            "required": ["channel_id", "entity_id"],
        },
    ),
    types.Tool(
        name="channel_entity_updated",
        description="Propagate changed entity fields. Resources are re-imported, channel nodes re-import their subtree, SKU field changes add and delete SKU entries, everything else is updated in place.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "channel_id": _CHANNEL_ID,
                "entity_id": _ENTITY_ID,
                "data": {
                    "type": "string",
                    "description": "Comma-separated names of the changed fields",
                },
            },
            "required": ["channel_id", "entity_id"],
        },
    ),
    types.Tool(
        name="channel_entity_deleted",
        description="Propagate an entity deleted from the source. Deletes it from the catalog with everything it alone kept in the channel.",
        annotations=_DELETE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "channel_id": _CHANNEL_ID,
                "entity": {
                    "type": "object",
                    "description": "Snapshot of the deleted entity: id, entity_type_id, fields and outbound_links",
                    "properties": {
                        "id": {"type": "integer"},
                        "entity_type_id": {"type": "string"},
                    },
                    "required": ["id", "entity_type_id"],
                },
            },
            "required": ["channel_id", "entity"],
        },
    ),
    types.Tool(
        name="channel_entity_field_set_updated",
        description="Propagate a field set change on an entity.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "channel_id": _CHANNEL_ID,
                "entity_id": _ENTITY_ID,
                "field_set_id": {"type": "string", "description": "New field set id"},
            },
            "required": ["channel_id", "entity_id"],
        },
    ),
    types.Tool(
        name="channel_entity_specification_field_added",
        description="Propagate a specification field added to an entity.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "channel_id": _CHANNEL_ID,
                "entity_id": _ENTITY_ID,
                "field_name": {"type": "string", "description": "Specification field name"},
            },
            "required": ["channel_id", "entity_id"],
        },
    ),
    types.Tool(
        name="channel_entity_specification_field_updated",
        description="Propagate a specification field update on an entity.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "channel_id": _CHANNEL_ID,
                "entity_id": _ENTITY_ID,
                "field_name": {"type": "string", "description": "Specification field name"},
            },
            "required": ["channel_id", "entity_id"],
        },
    ),
    types.Tool(
        name="channel_link_added",
        description="Propagate a link added in the channel. Imports the target with its ancestors and descendants.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": _LINK_PROPERTIES,
            "required": _LINK_REQUIRED,
        },
    ),
    types.Tool(
        name="channel_link_updated",
        description="Propagate a link update. Re-imports the source position and its direct children.",
        annotations=_WRITE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": _LINK_PROPERTIES,
            "required": _LINK_REQUIRED,
        },
    ),
    types.Tool(
        name="channel_link_deleted",
        description="Propagate a removed link. Unlinks a resource, corrects the target's memberships if it is still in the channel, or deletes it with everything it alone kept there.",
        annotations=_DELETE_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": _LINK_PROPERTIES,
            "required": _LINK_REQUIRED,
        },
    ),
]


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _require_int(args: dict[str, Any], key: str) -> int:
    value = args.get(key)
    if value is None:
        raise ValueError(f"{key} is required")
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _optional_int(args: dict[str, Any], key: str) -> int | None:
    if args.get(key) is None:
        return None
    return _require_int(args, key)


def _require_str(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} is required")
    return value.strip()


def _link_args(args: dict[str, Any]) -> tuple[int, int, int, str, int | None]:
    return (
        _require_int(args, "channel_id"),
        _require_int(args, "source_entity_id"),
        _require_int(args, "target_entity_id"),
        _require_str(args, "link_type_id"),
        _optional_int(args, "link_entity_id"),
    )


def _report_result(
    router: ChangeRouter, channel_id: int, report: ChangeReport | None
) -> types.CallToolResult:
    """Render a change report, or the notice that the event was ignored."""
    if report is None:
        text = (
            f"Ignored: event for channel {channel_id}, "
            f"configured channel is {router.channel_id}"
        )
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text)],
            structuredContent={
                "ignored": True,
                "channel_id": channel_id,
                "configured_channel_id": router.channel_id,
            },
        )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_change_report(report))],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


# ---------------------------------------------------------------------------
# Entity event handlers
# ---------------------------------------------------------------------------


async def _handle_entity_added(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    channel_id = _require_int(args, "channel_id")
    entity_id = _require_int(args, "entity_id")
    report = await run_exclusive(
        router.channel_id, router.channel_entity_added, channel_id, entity_id
    )
    return _report_result(router, channel_id, report)


async def _handle_entity_updated(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    channel_id = _require_int(args, "channel_id")
    entity_id = _require_int(args, "entity_id")
    report = await run_exclusive(
        router.channel_id,
        router.channel_entity_updated,
        channel_id,
        entity_id,
        args.get("data"),
    )
    return _report_result(router, channel_id, report)


async def _handle_entity_deleted(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle ``channel_entity_deleted``.

    The entity no longer exists in the source, so the caller passes the
    snapshot it was deleted with. Its outbound links are the children the
    delete cascades to.
    """
    channel_id = _require_int(args, "channel_id")
    payload = args.get("entity")
    if not isinstance(payload, dict):
        raise ValueError("entity is required")
    try:
        entity = Entity.model_validate(payload)
    except ValidationError as e:
        raise ValueError(f"Invalid entity payload: {e}") from e

    report = await run_exclusive(
        router.channel_id, router.channel_entity_deleted, channel_id, entity
    )
    return _report_result(router, channel_id, report)


async def _handle_field_set_updated(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    channel_id = _require_int(args, "channel_id")
    entity_id = _require_int(args, "entity_id")
    report = await run_exclusive(
        router.channel_id,
        router.channel_entity_field_set_updated,
        channel_id,
        entity_id,
        args.get("field_set_id"),
    )
    return _report_result(router, channel_id, report)


async def _handle_specification_field_added(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    channel_id = _require_int(args, "channel_id")
    entity_id = _require_int(args, "entity_id")
    report = await run_exclusive(
        router.channel_id,
        router.channel_entity_specification_field_added,
        channel_id,
        entity_id,
        args.get("field_name"),
    )
    return _report_result(router, channel_id, report)


async def _handle_specification_field_updated(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    channel_id = _require_int(args, "channel_id")
    entity_id = _require_int(args, "entity_id")
    report = await run_exclusive(
        router.channel_id,
        router.channel_entity_specification_field_updated,
        channel_id,
        entity_id,
        args.get("field_name"),
    )
    return _report_result(router, channel_id, report)


# ---------------------------------------------------------------------------
# Link event handlers
# ---------------------------------------------------------------------------


async def _handle_link_added(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    link = _link_args(args)
    report = await run_exclusive(router.channel_id, router.channel_link_added, *link)
    return _report_result(router, link[0], report)


async def _handle_link_updated(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    link = _link_args(args)
    report = await run_exclusive(
        router.channel_id, router.channel_link_updated, *link
    )
    return _report_result(router, link[0], report)


async def _handle_link_deleted(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    link = _link_args(args)
    report = await run_exclusive(
        router.channel_id, router.channel_link_deleted, *link
    )
    return _report_result(router, link[0], report)


# ToolSpec list for registry-based dispatch
EVENT_SPECS: list[ToolSpec] = [
    ToolSpec(tool=EVENT_TOOLS[0], permissions=SYNC_WRITE, handler=_handle_entity_added),
    ToolSpec(tool=EVENT_TOOLS[1], permissions=SYNC_WRITE, handler=_handle_entity_updated),
    ToolSpec(tool=EVENT_TOOLS[2], permissions=SYNC_WRITE, handler=_handle_entity_deleted),
    ToolSpec(
        tool=EVENT_TOOLS[3], permissions=SYNC_WRITE, handler=_handle_field_set_updated
    ),
    ToolSpec(
        tool=EVENT_TOOLS[4],
        permissions=SYNC_WRITE,
        handler=_handle_specification_field_added,
    ),
    ToolSpec(
        tool=EVENT_TOOLS[5],
        permissions=SYNC_WRITE,
        handler=_handle_specification_field_updated,
    ),
    ToolSpec(tool=EVENT_TOOLS[6], permissions=SYNC_WRITE, handler=_handle_link_added),
    ToolSpec(tool=EVENT_TOOLS[7], permissions=SYNC_WRITE, handler=_handle_link_updated),
    ToolSpec(tool=EVENT_TOOLS[8], permissions=SYNC_WRITE, handler=_handle_link_deleted),
]
