"""Status tool handlers for MCP server.

Defines two read-only tools:

- ``sync_status`` -- channel settings and the most recent connector events.
- ``catalog_import_status`` -- whether the target is currently importing.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.reporter import format_events
from ...sync.router import ChangeRouter
from .registry import ToolSpec

logger = logging.getLogger(__name__)

SYNC_VIEW = frozenset({"SYNC_VIEW"})

_READ_ANNOTATIONS = types.ToolAnnotations(
    readOnlyHint=True,
    destructiveHint=False,
    idempotentHint=True,
    openWorldHint=False,
)

STATUS_TOOLS = [
    types.Tool(
        name="sync_status",
        description="Show the synchronized channel, its catalog settings and the most recent connector events, newest first.",
        annotations=_READ_ANNOTATIONS,
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "default": 20,
                    "minimum": 1,
                    "maximum": 200,
                    "description": "Number of recent events to show",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="catalog_import_status",
        description="Ask the target catalog whether an import is currently running.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


async def _handle_sync_status(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    limit = args.get("limit", 20)
    if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= 200:
        raise ValueError(f"limit must be an integer between 1 and 200, got {limit!r}")

    config = router.config
    events = router.events.recent(limit)
    lines = [
        f"Sync status for channel {config.channel_id}",
        f"  Code prefix:     {config.channel_id_prefix or '(none)'}",
        f"  Items to SKUs:   {config.items_to_skus}",
        f"  Three levels:    {config.use_three_levels_in_commerce}",
        f"  Linked content:  {config.force_include_linked_content}",
        f"  Exported types:  {', '.join(config.export_entity_types)}",
        "",
        format_events(events),
    ]

    structured = {
        "channel_id": config.channel_id,
        "channel_id_prefix": config.channel_id_prefix,
        "items_to_skus": config.items_to_skus,
        "use_three_levels_in_commerce": config.use_three_levels_in_commerce,
        "force_include_linked_content": config.force_include_linked_content,
        "export_entity_types": list(config.export_entity_types),
        "events": [e.to_dict() for e in events],
    }

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


async def _handle_catalog_import_status(
    router: ChangeRouter, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``catalog_import_status`` tool."""
    status = await run_sync(router.client.is_importing)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Import status: {status}")],
        structuredContent={"status": status},
    )


# ToolSpec list for registry-based dispatch
STATUS_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=STATUS_TOOLS[0],
        permissions=SYNC_VIEW,
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=STATUS_TOOLS[1],
        permissions=SYNC_VIEW,
        handler=_handle_catalog_import_status,
    ),
]
