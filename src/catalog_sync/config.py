"""Configuration for the catalog sync server.

Reads target/source connection settings and channel behavior from CLI
args, environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CATALOG_SYNC_ENDPOINT: Target import API base URL (required)
    CATALOG_SYNC_API_KEY: Target import API key (required)
    CATALOG_SYNC_SOURCE_URL: Source REST API base URL (required)
    CATALOG_SYNC_SOURCE_API_KEY: Source REST API key (required)
    CATALOG_SYNC_CHANNEL_ID: Channel entity id to synchronize (required)
    CATALOG_SYNC_CHANNEL_PREFIX: Prefix prepended to every catalog code (optional)
    CATALOG_SYNC_ITEMS_TO_SKUS: Expand items into one entry per SKU (optional, default: false)
    CATALOG_SYNC_THREE_LEVELS: Keep the item entry above its SKUs (optional, default: false)
    CATALOG_SYNC_FORCE_INCLUDE_LINKED_CONTENT: Keep association-only rows (optional, default: false)
    CATALOG_SYNC_EXPORT_ENTITY_TYPES: Comma-separated entity types to export (optional)
    CATALOG_SYNC_DOCUMENT_POST_URL: Listener notified with every sent document (optional)
    CATALOG_SYNC_INSECURE: Skip SSL verification (optional, default: false)
    CATALOG_SYNC_TIMEOUT: Request timeout in seconds (optional, default: 60)
    CATALOG_SYNC_MAX_DELETE_DEPTH: Recursion cap for cascading deletes (optional, default: 64)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_ENTITY_TYPES = (
    "Channel",
    "ChannelNode",
    "Product",
    "Item",
    "Bundle",
    "Package",
    "DynamicPackage",
    "Resource",
)


@dataclass
class Config:
    endpoint_url: str
    api_key: str
    source_url: str
    source_api_key: str
    channel_id: int
    channel_id_prefix: str = ""
    items_to_skus: bool = False
    use_three_levels_in_commerce: bool = False
    force_include_linked_content: bool = False
    sku_field_name: str = "SKUs"
    export_entity_types: tuple[str, ...] = DEFAULT_EXPORT_ENTITY_TYPES
    bundle_entity_types: tuple[str, ...] = ()
    package_entity_types: tuple[str, ...] = ()
    dynamic_package_entity_types: tuple[str, ...] = ()
    relation_link_types: tuple[str, ...] = ()
    association_link_types: tuple[str, ...] = ()
    document_post_url: str | None = None
    insecure: bool = False
    debug: bool = False
    request_timeout: int = 60
    import_poll_interval: float = 15.0
    max_retries: int = 3
    max_delete_depth: int = 64


def _validate_url(url: str, label: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid {label} '{url}': must start with http:// or https://"
        )
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid {label} '{url}': URL must include a hostname"
        )
    return url.removesuffix("/")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a URL is malformed, a key is empty, or the channel
            id is not positive.
    """
    config.endpoint_url = _validate_url(config.endpoint_url, "endpoint URL")
    config.source_url = _validate_url(config.source_url, "source URL")
    if config.document_post_url:
        config.document_post_url = _validate_url(
            config.document_post_url, "document post URL"
        )

    if not config.api_key.strip():
        raise ValueError(
            "Target API key cannot be empty. Set CATALOG_SYNC_API_KEY environment variable."
        )

    if not config.source_api_key.strip():
        raise ValueError(
            "Source API key cannot be empty. Set CATALOG_SYNC_SOURCE_API_KEY environment variable."
        )

    if config.channel_id <= 0:
        raise ValueError(
            f"Invalid channel id {config.channel_id}: must be a positive entity id"
        )

    if config.use_three_levels_in_commerce and not config.items_to_skus:
        logger.warning(
            "use_three_levels_in_commerce has no effect unless items_to_skus is enabled"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    endpoint_url: str | None = None,
    api_key: str | None = None,
    source_url: str | None = None,
    source_api_key: str | None = None,
    channel_id: int | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        endpoint_url: Override target API URL.
        api_key: Override target API key.
        source_url: Override source API URL.
        source_api_key: Override source API key.
        channel_id: Override channel id.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of ``Config`` field values from the YAML
            config file. Used as fallback when CLI arg and env var are
            both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config is missing after checking all
            sources, or a value is out of range.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    final_endpoint = (
        endpoint_url
        or os.getenv("CATALOG_SYNC_ENDPOINT")
        or fb.get("endpoint_url")
    )
    if not final_endpoint:
        raise ValueError(
            "Target endpoint not found. Set CATALOG_SYNC_ENDPOINT environment variable, "
            "pass --endpoint CLI argument, or add 'target.endpoint_url' to config.yml."
        )

    final_api_key = (
        api_key or os.getenv("CATALOG_SYNC_API_KEY") or fb.get("api_key")
    )
    if not final_api_key:
        raise ValueError(
            "Target API key not found. Set CATALOG_SYNC_API_KEY environment variable, "
            "pass --api-key CLI argument, or add 'target.api_key' to config.yml."
        )

    final_source_url = (
        source_url
        or os.getenv("CATALOG_SYNC_SOURCE_URL")
        or fb.get("source_url")
    )
    if not final_source_url:
        raise ValueError(
            "Source URL not found. Set CATALOG_SYNC_SOURCE_URL environment variable, "
            "pass --source-url CLI argument, or add 'source.url' to config.yml."
        )

    final_source_key = (
        source_api_key
        or os.getenv("CATALOG_SYNC_SOURCE_API_KEY")
        or fb.get("source_api_key")
    )
    if not final_source_key:
        raise ValueError(
            "Source API key not found. Set CATALOG_SYNC_SOURCE_API_KEY environment variable, "
            "or add 'source.api_key' to config.yml."
        )

    # --- Channel id: CLI > env > YAML > error ---

    if channel_id is not None:
        final_channel_id = channel_id
    else:
        env_channel = _get_int_env("CATALOG_SYNC_CHANNEL_ID", 1, 2**31 - 1)
        if env_channel is not None:
            final_channel_id = env_channel
        elif fb.get("channel_id") is not None:
            final_channel_id = int(fb["channel_id"])
        else:
            raise ValueError(
                "Channel id not found. Set CATALOG_SYNC_CHANNEL_ID environment variable, "
                "pass --channel-id CLI argument, or add 'channel.id' to config.yml."
            )

    prefix = os.getenv("CATALOG_SYNC_CHANNEL_PREFIX")
    if prefix is None:
        prefix = fb.get("channel_id_prefix") or ""

    document_post_url = os.getenv("CATALOG_SYNC_DOCUMENT_POST_URL") or fb.get(
        "document_post_url"
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    def resolve_bool(flag: bool, env_key: str, fb_key: str) -> bool:
        if flag:
            return True
        env_value = _get_bool_env(env_key)
        if env_value is not None:
            return env_value
        return bool(fb.get(fb_key, False))

    final_insecure = resolve_bool(insecure, "CATALOG_SYNC_INSECURE", "insecure")
    final_debug = resolve_bool(debug, "CATALOG_SYNC_DEBUG", "debug")
    items_to_skus = resolve_bool(
        False, "CATALOG_SYNC_ITEMS_TO_SKUS", "items_to_skus"
    )
    three_levels = resolve_bool(
        False, "CATALOG_SYNC_THREE_LEVELS", "use_three_levels_in_commerce"
    )
    force_linked = resolve_bool(
        False,
        "CATALOG_SYNC_FORCE_INCLUDE_LINKED_CONTENT",
        "force_include_linked_content",
    )

    # --- Numeric fields: env > YAML > default ---

    timeout = _get_int_env("CATALOG_SYNC_TIMEOUT", 1, 3600)
    if timeout is None:
        timeout = int(fb.get("request_timeout", 60))

    max_depth = _get_int_env("CATALOG_SYNC_MAX_DELETE_DEPTH", 1, 10000)
    if max_depth is None:
        max_depth = int(fb.get("max_delete_depth", 64))

    # --- List fields: env (comma-separated) > YAML > default ---

    export_raw = os.getenv("CATALOG_SYNC_EXPORT_ENTITY_TYPES")
    if export_raw is not None:
        export_types = tuple(
            t.strip() for t in export_raw.split(",") if t.strip()
        )
    else:
        export_types = tuple(
            fb.get("export_entity_types") or DEFAULT_EXPORT_ENTITY_TYPES
        )

    config = Config(
        endpoint_url=final_endpoint,
        api_key=final_api_key.strip(),
        source_url=final_source_url,
        source_api_key=final_source_key.strip(),
        channel_id=final_channel_id,
        channel_id_prefix=prefix,
        items_to_skus=items_to_skus,
        use_three_levels_in_commerce=three_levels,
        force_include_linked_content=force_linked,
        sku_field_name=fb.get("sku_field_name") or "SKUs",
        export_entity_types=export_types,
        bundle_entity_types=tuple(fb.get("bundle_entity_types") or ()),
        package_entity_types=tuple(fb.get("package_entity_types") or ()),
        dynamic_package_entity_types=tuple(
            fb.get("dynamic_package_entity_types") or ()
        ),
        relation_link_types=tuple(fb.get("relation_link_types") or ()),
        association_link_types=tuple(fb.get("association_link_types") or ()),
        document_post_url=document_post_url,
        insecure=final_insecure,
        debug=final_debug,
        request_timeout=timeout,
        import_poll_interval=float(fb.get("import_poll_interval", 15.0)),
        max_retries=int(fb.get("max_retries", 3)),
        max_delete_depth=max_depth,
    )

    validate_config(config)

    return config
