import logging
import threading
import time
from typing import Any

import requests

from ..config import Config
from .http import transient_retry

logger = logging.getLogger(__name__)

IMPORT_STATUS_IMPORTING = "importing"
IMPORT_STATUS_ERROR_PREFIX = "ERROR"


class CatalogClient:
    """Client for the target catalog import API.

    Every call is a JSON POST (or GET) below ``config.endpoint_url``,
    authenticated with an ``apikey`` header. Timeouts and connection
    errors are retried; HTTP error statuses raise ``requests.HTTPError``.

    Args:
        config: Connection settings for the target.
    """

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.endpoint_url.rstrip("/")
        self._thread_local = threading.local()
        self._retrying = transient_retry(config.max_retries)

    @property
    def session(self) -> requests.Session:
        """Session of the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {"apikey": self.config.api_key, "Accept": "application/json"}
        )
        session.verify = not self.config.insecure
        return session

    def _url(self, action: str) -> str:
        return f"{self.base_url}/{action}"

    def _post(self, action: str, payload: Any) -> Any:
        """POST ``payload`` as JSON to an import API action and decode the reply."""
        url = self._url(action)
        logger.debug("Posting to %s", url)
        started = time.monotonic()
        response = self._retrying(
            self._get_session().post,
            url,
            json=payload,
            timeout=(10, self.config.request_timeout),
        )
        response.raise_for_status()
        logger.debug(
            "Posted to %s, took %.0f ms",
            url,
            (time.monotonic() - started) * 1000,
        )
        if not response.content:
            return None
        return response.json()

    def _get(self, action: str) -> Any:
        response = self._retrying(
            self._get_session().get,
            self._url(action),
            timeout=(10, self.config.request_timeout),
        )
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def validate_connection(self) -> str:
        """
        Call the import API greeting endpoint.
        Returns the greeting string if successful.
        """
        greeting = self._get("Get")
        return str(greeting) if greeting is not None else ""

    def is_importing(self) -> str:
        """Current import status string."""
        return str(self._get("IsImporting"))

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete_catalog_entry(self, code: str) -> bool:
        """
        Delete one catalog entry by code.
        """
        return bool(self._post("DeleteCatalogEntry", code))

    def delete_catalog(self, catalog_id: int) -> bool:
        """
        Delete a whole catalog by channel id.
        """
        return bool(self._post("DeleteCatalog", catalog_id))

    def delete_catalog_node(self, code: str) -> bool:
        """
        Delete one catalog node by code.
        """
        return bool(self._post("DeleteCatalogNode", code))

    # ------------------------------------------------------------------
    # Relations and link entities
    # ------------------------------------------------------------------

    def update_link_entity_data(
        self,
        channel_name: str,
        parent_code: str,
        link_entity_code: str,
        display_name: str,
    ) -> bool:
        """
        Rename catalog associations described by a link entity.

        Args:
            channel_name: Catalog name.
            parent_code: Code of the entry owning the association.
            link_entity_code: Code of the link entity (association description).
            display_name: New association name.

        Returns:
            True if the target accepted the update.
        """
        return bool(
            self._post(
                "UpdateLinkEntityData",
                {
                    "ChannelName": channel_name,
                    "ParentEntryId": parent_code,
                    "LinkEntityIdString": link_entity_code,
                    "LinkEntryDisplayName": display_name,
                },
            )
        )

    def update_entry_relations(
        self,
        entry_code: str,
        channel_id: int,
        channel_name: str,
        parent_code: str,
        node_membership: dict[str, bool],
        link_type_id: str,
        is_relation: bool,
        link_entity_ids_to_remove: list[str] | None = None,
    ) -> bool:
        """
        Correct an entry's relations after one of its links was removed.

        Args:
            entry_code: Code of the entry (or node) whose relations change.
            channel_id: Channel id.
            channel_name: Catalog name.
            parent_code: Code of the former parent.
            node_membership: ``{node_code: still_member}`` per channel node.
            link_type_id: Link type of the removed link.
            is_relation: Whether that link type is a hierarchical relation.
            link_entity_ids_to_remove: Association descriptions to drop.

        Returns:
            True if the target accepted the update.
        """
        payload = {
            "CatalogEntryIdString": entry_code,
            "ChannelCode": f"{self.config.channel_id_prefix}{channel_id}",
            "ChannelName": channel_name,
            "ParentEntryId": parent_code,
            "RemoveFromChannelNodes": [
                code for code, member in node_membership.items() if not member
            ],
            "ParentExistsInChannelNodes": any(node_membership.values()),
            "IsRelation": is_relation,
            "LinkTypeId": link_type_id,
            "LinkEntityIdsToRemove": link_entity_ids_to_remove or [],
        }
        return bool(self._post("UpdateEntryRelations", payload))

    def get_link_entity_associations_for_entity(
        self,
        link_type_id: str,
        channel_name: str,
        parent_codes: list[str],
        target_codes: list[str],
    ) -> list[str]:
        """
        Association descriptions (link entity codes) between parents and targets.
        """
        result = self._post(
            "GetLinkEntityAssociationsForEntity",
            {
                "LinkTypeId": link_type_id,
                "ChannelName": channel_name,
                "ParentIds": parent_codes,
                "TargetIds": target_codes,
            },
        )
        return [str(item) for item in result or []]

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def import_catalog(self, document: bytes, channel_guid: str) -> bool:
        """
        Import a catalog document and wait for the import to finish.

        The import API answers "importing" while a background import runs;
        the status is then polled every ``import_poll_interval`` seconds.

        Args:
            document: Serialized catalog document.
            channel_guid: GUID of the channel the document belongs to.

        Returns:
            True on success, False when the target reports an error.
        """
        status = self._post(
            "ImportCatalogXml",
            {"ChannelGuid": channel_guid, "Document": document.decode("utf-8")},
        )
        status = str(status or "")
        while status.lower() == IMPORT_STATUS_IMPORTING:
            time.sleep(self.config.import_poll_interval)
            status = self.is_importing()

        if status.startswith(IMPORT_STATUS_ERROR_PREFIX):
            logger.error("Catalog import failed: %s", status)
            return False
        logger.info("Catalog import finished: %s", status or "ok")
        return True

    def import_resources(self, document: bytes) -> bool:
        """
        Import a resources document.
        """
        accepted = bool(
            self._post(
                "ImportResources", {"Document": document.decode("utf-8")}
            )
        )
        if not accepted:
            logger.error("Resource import was rejected")
        return accepted

    def import_update_completed(
        self, catalog_name: str, event_type: str, resources_included: bool
    ) -> bool:
        """
        Signal that an add/update import finished.
        """
        return bool(
            self._post(
                "ImportUpdateCompleted",
                {
                    "CatalogName": catalog_name,
                    "EventType": event_type,
                    "ResourcesIncluded": resources_included,
                },
            )
        )

    def delete_completed(self, catalog_name: str, event_type: str) -> bool:
        """
        Signal that a delete finished.
        """
        return bool(
            self._post(
                "DeleteCompleted",
                {"CatalogName": catalog_name, "EventType": event_type},
            )
        )

    # ------------------------------------------------------------------
    # Document listener
    # ------------------------------------------------------------------

    def post_document(self, kind: str, document: bytes) -> bool:
        """
        Hand a sent document to the optional document listener.

        Args:
            kind: Document kind (``deleted``, ``updated``, ``catalog``, ...).
            document: Serialized document.

        Returns:
            True if posted, False when no listener is configured.
        """
        if not self.config.document_post_url:
            logger.debug(
                "No document listener configured, %s document not posted", kind
            )
            return False
        response = self._retrying(
            self._get_session().post,
            self.config.document_post_url,
            data=document,
            headers={"Content-Type": "application/xml", "X-Document-Kind": kind},
            timeout=(10, self.config.request_timeout),
        )
        response.raise_for_status()
        return True
