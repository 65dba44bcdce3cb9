"""Source system data and channel-structure services.

``SourceService`` is the contract the sync engine consumes. ``SourceClient``
implements it against the source system's JSON REST API.

Absent entities come back as ``None`` (HTTP 404). Every other failure
propagates as a ``requests`` exception.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

import requests

from ..config import Config
from ..sync.models import Entity, Field, Link, LinkType, LoadLevel, StructureEntity
from .http import transient_retry

logger = logging.getLogger(__name__)


class SourceService(Protocol):
    """Read-only view of the source system used by one channel."""

    def get_entity(self, entity_id: int, level: LoadLevel) -> Entity | None: ...

    def get_links_for_link_entity(self, link_entity_id: int) -> list[Link]: ...

    def get_field(self, entity_id: int, field_name: str) -> Field | None: ...

    def get_field_history(
        self, entity_id: int, field_name: str
    ) -> list[Field]: ...

    def get_inbound_links(self, entity_id: int) -> list[Link]: ...

    def get_all_link_types(self) -> list[LinkType]: ...

    def get_all_structure_entities_for_type(
        self, channel_id: int, entity_type_id: str
    ) -> list[StructureEntity]: ...

    def get_all_structure_entities_for_entity_in_channel(
        self, channel_id: int, entity_id: int
    ) -> list[StructureEntity]: ...

    def get_all_structure_entities_for_entity_with_parent_in_channel(
        self, channel_id: int, entity_id: int, parent_id: int
    ) -> list[StructureEntity]: ...

    def entity_exists_in_channel(
        self, channel_id: int, entity_id: int
    ) -> bool: ...

    def get_structure_children_from_path(
        self, entity_id: int, path: str
    ) -> list[StructureEntity]: ...

    def get_all_structure_entities_from_path(
        self, path: str
    ) -> list[StructureEntity]: ...


class SourceClient:
    """REST client for the source system.

    Args:
        config: Connection settings (``source_url``, ``source_api_key``).
    """

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.source_url.rstrip("/")
        self._thread_local = threading.local()
        self._retrying = transient_retry(config.max_retries)

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "X-Api-Key": self.config.source_api_key,
                "Accept": "application/json",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> Any:
        """GET a JSON resource.

        Returns None for a 404 when ``allow_missing`` is set.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        response = self._retrying(
            self._get_session().get,
            url,
            params=params,
            timeout=(10, self.config.request_timeout),
        )
        if allow_missing and response.status_code == 404:
            logger.debug("Source returned 404 for %s", url)
            return None
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Data service
    # ------------------------------------------------------------------

    def get_entity(self, entity_id: int, level: LoadLevel) -> Entity | None:
        """Fetch an entity at the given load level.

        Returns:
            The entity, or None if it does not exist.
        """
        data = self._get(
            f"entities/{entity_id}",
            params={"level": level.name},
            allow_missing=True,
        )
        if data is None:
            return None
        data.setdefault("load_level", level)
        return Entity.model_validate(data)

    def get_links_for_link_entity(self, link_entity_id: int) -> list[Link]:
        data = self._get("links", params={"linkEntityId": link_entity_id})
        return [Link.model_validate(item) for item in data or []]

    def get_field(self, entity_id: int, field_name: str) -> Field | None:
        data = self._get(
            f"entities/{entity_id}/fields/{field_name}", allow_missing=True
        )
        return Field.model_validate(data) if data is not None else None

    def get_field_history(
        self, entity_id: int, field_name: str
    ) -> list[Field]:
        """Field revisions ordered by revision number."""
        data = self._get(f"entities/{entity_id}/fields/{field_name}/history")
        history = [Field.model_validate(item) for item in data or []]
        return sorted(history, key=lambda f: f.revision)

    def get_inbound_links(self, entity_id: int) -> list[Link]:
        data = self._get(f"entities/{entity_id}/links/inbound")
        return [Link.model_validate(item) for item in data or []]

    def get_all_link_types(self) -> list[LinkType]:
        data = self._get("model/linktypes")
        return [LinkType.model_validate(item) for item in data or []]

    # ------------------------------------------------------------------
    # Channel structure service
    # ------------------------------------------------------------------

    def _structure(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[StructureEntity]:
        data = self._get(path, params=params)
        return [StructureEntity.model_validate(item) for item in data or []]

    def get_all_structure_entities_for_type(
        self, channel_id: int, entity_type_id: str
    ) -> list[StructureEntity]:
        return self._structure(
            f"channels/{channel_id}/structure",
            params={"entityTypeId": entity_type_id},
        )

    def get_all_structure_entities_for_entity_in_channel(
        self, channel_id: int, entity_id: int
    ) -> list[StructureEntity]:
        return self._structure(
            f"channels/{channel_id}/structure/entities/{entity_id}"
        )

    def get_all_structure_entities_for_entity_with_parent_in_channel(
        self, channel_id: int, entity_id: int, parent_id: int
    ) -> list[StructureEntity]:
        return self._structure(
            f"channels/{channel_id}/structure/entities/{entity_id}",
            params={"parentId": parent_id},
        )

    def entity_exists_in_channel(
        self, channel_id: int, entity_id: int
    ) -> bool:
        data = self._get(f"channels/{channel_id}/entities/{entity_id}/exists")
        return bool(data)

    def get_structure_children_from_path(
        self, entity_id: int, path: str
    ) -> list[StructureEntity]:
        return self._structure(
            "structure/children",
            params={"entityId": entity_id, "path": path},
        )

    def get_all_structure_entities_from_path(
        self, path: str
    ) -> list[StructureEntity]:
        return self._structure("structure/subtree", params={"path": path})
