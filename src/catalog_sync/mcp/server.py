"""MCP Server for incremental catalog sync using stdio transport.

This module implements the Model Context Protocol server through which an
event source (or an agent relaying source events) pushes channel change
events into the sync engine.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.router import ChangeRouter
from ..version import check_version_consistency
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("catalog-sync-server")

# Global router instance (initialized in lifespan)
_router: ChangeRouter | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    router: ChangeRouter, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test target connectivity."""
    try:
        greeting = await run_sync(router.client.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"Catalog sync server connected successfully for channel "
                        f"{router.channel_id}. Target: {greeting}"
                    ),
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Target connection failed: {e}. Check CATALOG_SYNC_ENDPOINT and CATALOG_SYNC_API_KEY.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test catalog sync server connectivity to the target import API",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_router() -> ChangeRouter:
    """Get the global ChangeRouter instance.

    Raises:
        RuntimeError: If router is not initialized
    """
    if _router is None:
        raise RuntimeError(
            "ChangeRouter not initialized. Server lifespan not started."
        )
    return _router


def set_router(router: ChangeRouter | None) -> None:
    """Set the global ChangeRouter instance, or None to clear."""
    global _router
    _router = router


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    router = get_router()
    try:
        return await get_registry().call_tool(name, arguments, router)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    target connection and the channel via the lifespan manager, and starts
    the server with stdio transport.

    Args:
        config_overrides: Optional dict with config values to override
            (endpoint_url, api_key, source_url, channel_id, insecure, log_file,
            permissions_file)
    """
    log_file = (
        config_overrides.get("log_file") if config_overrides else None
    )

    # Must run before stdio_server so nothing reaches stdout during negotiation
    setup_logging(mode="mcp", log_file=log_file)

    is_consistent, message = check_version_consistency()
    if not is_consistent:
        logger.warning(message)
        sys.stderr.write(f"Warning: {message}\n")
    else:
        logger.info(message)

    permissions_file = (
        config_overrides.get("permissions_file")
        if config_overrides
        else None
    )
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )

    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_router() is called here and not in the lifespan: under
    # `python -m catalog_sync.mcp.server` this module is __main__, and a
    # relative import from lifespan.py would load a second copy of it.
    async with server_lifespan(
        config_overrides=config_overrides
    ) as ctx:
        set_router(ctx["router"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="catalog-sync-server",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_router(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Catalog Sync Server - propagate channel change events into a commerce catalog over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or config.yml)
  catalog-sync-server

  # Override target and channel
  catalog-sync-server --endpoint https://commerce.example.com/import --channel-id 123

  # Use with insecure SSL (development only)
  catalog-sync-server --endpoint http://localhost:8080/import --insecure

  # Custom log file location
  catalog-sync-server --log-file /var/log/catalog-sync.log

  # Expose only the read-only status tools
  catalog-sync-server --permissions-file /etc/catalog-sync/read-only.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--endpoint",
        help="Override target import API URL (takes precedence over CATALOG_SYNC_ENDPOINT and config files)",
    )
    parser.add_argument(
        "--api-key",
        help="Override target import API key"
        " (visible in process list -- prefer CATALOG_SYNC_API_KEY env var for security)",
    )
    parser.add_argument(
        "--source-url",
        help="Override source API URL (takes precedence over CATALOG_SYNC_SOURCE_URL and config files)",
    )
    parser.add_argument(
        "--source-api-key",
        help="Override source API key"
        " (visible in process list -- prefer CATALOG_SYNC_SOURCE_API_KEY env var for security)",
    )
    parser.add_argument(
        "--channel-id",
        type=int,
        help="Override channel entity id (takes precedence over CATALOG_SYNC_CHANNEL_ID and config files)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/catalog-sync.log",
        help="Log file path (default: /tmp/catalog-sync.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (SYNC_VIEW, SYNC_WRITE), # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter .catalog_sync/config.yml (unless a config file exists) and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"catalog-sync-server version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        path = ensure_config()
        print(f"Config file: {path}", file=sys.stderr)
        return

    config_overrides = {}
    if args.endpoint:
        config_overrides["endpoint_url"] = args.endpoint
    if args.api_key:
        config_overrides["api_key"] = args.api_key
    if args.source_url:
        config_overrides["source_url"] = args.source_url
    if args.source_api_key:
        config_overrides["source_api_key"] = args.source_api_key
    if args.channel_id is not None:
        config_overrides["channel_id"] = args.channel_id
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file

    if config_overrides:
        override_keys = [
            k
            for k in config_overrides.keys()
            if k not in ("api_key", "source_api_key")
        ]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(
            main(
                config_overrides=config_overrides
                if config_overrides
                else None
            )
        )
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
