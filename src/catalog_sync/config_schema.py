"""Unified configuration schema for catalog_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the target catalog, the source system, channel behavior and
logging. Includes an adapter that flattens the sections into the fallback
dict consumed by ``load_config()``.

Usage:
    from catalog_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class TargetConfig(BaseModel):
    """Target catalog import API settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    endpoint_url: str | None = Field(
        default=None, description="Import API base URL"
    )
    api_key: str | None = Field(default=None, description="Import API key")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    request_timeout: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Request timeout in seconds (1-3600)",
    )
    import_poll_interval: float = Field(
        default=15.0,
        gt=0,
        le=600,
        description="Seconds between import status polls",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempts per request on timeouts and connection errors",
    )
    document_post_url: str | None = Field(
        default=None,
        description="Listener notified with every sent document",
    )

    model_config = {"frozen": True}


class SourceConfig(BaseModel):
    """Source system REST API settings."""

    url: str | None = Field(default=None, description="Source API base URL")
    api_key: str | None = Field(default=None, description="Source API key")

    model_config = {"frozen": True}


class ChannelConfig(BaseModel):
    """Channel and catalog projection settings.

    Attributes:
        id: Channel entity id.
        prefix: Prefix prepended to every catalog code.
        items_to_skus: Expand items into one entry per SKU.
        use_three_levels_in_commerce: Keep the item entry above its SKUs.
        force_include_linked_content: Keep rows reachable only through
            association links.
        sku_field_name: Item field holding the SKU XML.
        export_entity_types: Entity types projected into the catalog.
        bundle_entity_types: Entity types exported as bundles.
        package_entity_types: Entity types exported as packages.
        dynamic_package_entity_types: Entity types exported as dynamic packages.
        relation_link_types: Link types forced to the relation kind.
        association_link_types: Link types forced to the association kind.
        max_delete_depth: Recursion cap for cascading deletes.
    """

    id: int | None = Field(default=None, ge=1, description="Channel id")
    prefix: str = Field(default="", description="Catalog code prefix")
    items_to_skus: bool = False
    use_three_levels_in_commerce: bool = False
    force_include_linked_content: bool = False
    sku_field_name: str = "SKUs"
    export_entity_types: list[str] | None = None
    bundle_entity_types: list[str] = Field(default_factory=list)
    package_entity_types: list[str] = Field(default_factory=list)
    dynamic_package_entity_types: list[str] = Field(default_factory=list)
    relation_link_types: list[str] = Field(default_factory=list)
    association_link_types: list[str] = Field(default_factory=list)
    max_delete_depth: int = Field(
        default=64,
        ge=1,
        le=10000,
        description="Maximum recursion depth for cascading deletes (1-10000)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    target: TargetConfig = Field(default_factory=TargetConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config() fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the sections into ``Config`` field names.

    ``None`` values are dropped so they never shadow built-in defaults.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Dict suitable for ``load_config(yaml_fallbacks=...)``.
    """
    target = unified.target
    channel = unified.channel
    flat: dict[str, Any] = {
        "endpoint_url": target.endpoint_url,
        "api_key": target.api_key,
        "insecure": target.insecure,
        "debug": target.debug,
        "request_timeout": target.request_timeout,
        "import_poll_interval": target.import_poll_interval,
        "max_retries": target.max_retries,
        "document_post_url": target.document_post_url,
        "source_url": unified.source.url,
        "source_api_key": unified.source.api_key,
        "channel_id": channel.id,
        "channel_id_prefix": channel.prefix,
        "items_to_skus": channel.items_to_skus,
        "use_three_levels_in_commerce": channel.use_three_levels_in_commerce,
        "force_include_linked_content": channel.force_include_linked_content,
        "sku_field_name": channel.sku_field_name,
        "export_entity_types": channel.export_entity_types,
        "bundle_entity_types": channel.bundle_entity_types,
        "package_entity_types": channel.package_entity_types,
        "dynamic_package_entity_types": channel.dynamic_package_entity_types,
        "relation_link_types": channel.relation_link_types,
        "association_link_types": channel.association_link_types,
        "max_delete_depth": channel.max_delete_depth,
    }
    return {k: v for k, v in flat.items() if v is not None}
