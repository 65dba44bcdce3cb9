"""YAML config files for catalog_sync.

Looks for files in three places, highest precedence first:

1. the path in ``CATALOG_SYNC_CONFIG``,
2. ``.catalog_sync/config.yml`` below the working directory,
3. ``~/.config/catalog_sync/config.yml``.

Sections (``target``, ``source``, ``channel``, ``logging``) of a higher
file replace the same sections of a lower one. ``${VAR}`` and
``${VAR:-default}`` in string values are expanded from the environment
after merging. The result feeds ``config_schema.build_config``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CATALOG_SYNC_CONFIG"
CONFIG_DIR_NAME = ".catalog_sync"

_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")

_STARTER_CONFIG = """\
# catalog-sync configuration
#
# Connection settings can also be set via environment variables:
#   CATALOG_SYNC_ENDPOINT, CATALOG_SYNC_API_KEY,
#   CATALOG_SYNC_SOURCE_URL, CATALOG_SYNC_SOURCE_API_KEY,
#   CATALOG_SYNC_CHANNEL_ID
#
# target:
#   endpoint_url: https://commerce.example.com/api/catalogimport
#   api_key: ${CATALOG_SYNC_API_KEY}
#   request_timeout: 60
#   import_poll_interval: 15
#   document_post_url: null
#
# source:
#   url: https://pim.example.com/api/v1
#   api_key: ${CATALOG_SYNC_SOURCE_API_KEY}
#
# channel:
#   id: 123
#   prefix: ""
#   items_to_skus: false
#   use_three_levels_in_commerce: false
#   force_include_linked_content: false
#   bundle_entity_types: []
#   package_entity_types: []
#   dynamic_package_entity_types: []
#   max_delete_depth: 64
#
# logging:
#   level: INFO
#   file: null
"""


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` from the environment.

    An unset or empty variable without a default expands to ``""``.
    """

    def _expand(match: re.Match) -> str:
        return os.environ.get(match.group(1)) or match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _expand_section(value: Any) -> Any:
    if isinstance(value, str):
        return interpolate_env_vars(value)
    if isinstance(value, dict):
        return {key: _expand_section(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_section(item) for item in value]
    return value


def _project_config_path() -> Path:
    return Path.cwd() / CONFIG_DIR_NAME / "config.yml"


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first."""
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(_project_config_path())
    candidates.append(Path.home() / ".config" / "catalog_sync" / "config.yml")
    return [path for path in candidates if path.exists()]


def ensure_config() -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    path = _project_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


def _read_sections(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {path} must hold a mapping of sections, "
            f"got {type(data).__name__}"
        )
    return data


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one dict of sections.

    Returns an empty dict when no file exists.

    Raises:
        ValueError: If a file is not valid YAML or its root is not a mapping.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        merged.update(_read_sections(path))
    return _expand_section(merged)
