"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_fallbacks
from ..core.async_utils import reset_channel_locks, run_sync
from ..core.client import CatalogClient
from ..core.source import SourceClient
from ..sync.router import ChangeRouter

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create the source and target clients and validate the target connection
    - Check that the configured channel exists in the source
    - Fail fast if either check fails

    On shutdown:
    - Forget per-channel locks and log shutdown

    Args:
        config_overrides: Optional dict with config values from CLI
            (endpoint_url, api_key, source_url, source_api_key, channel_id, insecure)

    Yields:
        Dict with 'router' key containing the initialized ChangeRouter

    Raises:
        RuntimeError: If configuration is invalid, the target is unreachable
            or the channel is not valid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Catalog Sync Server starting...")

    try:
        # .env first, so ${VAR} interpolation in YAML can use .env values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            raw = load_hierarchical_config()
            yaml_fallbacks = to_fallbacks(build_config(raw))
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            endpoint_url=overrides.get("endpoint_url"),
            api_key=overrides.get("api_key"),
            source_url=overrides.get("source_url"),
            source_api_key=overrides.get("source_api_key"),
            channel_id=overrides.get("channel_id"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info(
            "Target: %s, channel: %d", config.endpoint_url, config.channel_id
        )
        _stderr_print(f"  Target: {config.endpoint_url}")
        _stderr_print(f"  Channel: {config.channel_id}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure CATALOG_SYNC_ENDPOINT, CATALOG_SYNC_API_KEY, CATALOG_SYNC_SOURCE_URL, "
            "CATALOG_SYNC_SOURCE_API_KEY and CATALOG_SYNC_CHANNEL_ID are set."
        )
        raise RuntimeError(
            f"Configuration error: {e}. Ensure CATALOG_SYNC_ENDPOINT, CATALOG_SYNC_API_KEY, "
            "CATALOG_SYNC_SOURCE_URL, CATALOG_SYNC_SOURCE_API_KEY and CATALOG_SYNC_CHANNEL_ID are set."
        ) from e

    logger.info("Validating target connection...")
    _stderr_print("  Validating target connection...")
    try:
        client = CatalogClient(config)
        greeting = await run_sync(client.validate_connection)
        logger.info("Connected to target import API: %s", greeting)
        _stderr_print(f"  Connected to target: {greeting}")
    except Exception as e:
        logger.error("Failed to connect to target: %s", e)
        _stderr_print("ERROR: Target connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check CATALOG_SYNC_ENDPOINT and CATALOG_SYNC_API_KEY.")
        raise RuntimeError(
            f"Target connection failed: {e}. Check CATALOG_SYNC_ENDPOINT and CATALOG_SYNC_API_KEY."
        ) from e

    router = ChangeRouter(SourceClient(config), client, config)
    try:
        valid = await run_sync(router.validate_channel)
    except Exception as e:
        logger.error("Failed to reach source: %s", e)
        _stderr_print("ERROR: Source connection failed.")
        _stderr_print(f"  {e}")
        raise RuntimeError(
            f"Source connection failed: {e}. Check CATALOG_SYNC_SOURCE_URL and CATALOG_SYNC_SOURCE_API_KEY."
        ) from e
    if not valid:
        _stderr_print(f"ERROR: Channel {config.channel_id} is not a valid channel.")
        raise RuntimeError(
            f"Channel {config.channel_id} is not a valid channel. Check CATALOG_SYNC_CHANNEL_ID."
        )

    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"router": router}

    reset_channel_locks()
    logger.info("MCP server shutting down")
    _stderr_print("Catalog Sync Server shutting down.")
