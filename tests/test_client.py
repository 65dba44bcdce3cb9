from unittest.mock import Mock, patch

import pytest
import requests
from conftest import make_config

from catalog_sync.core.client import CatalogClient


def _response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.content = b"" if payload is None else b"x"
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


def test_base_url_strips_trailing_slash():
    """Test that action URLs are built below the endpoint without double slashes."""
    client = CatalogClient(
        make_config(endpoint_url="https://commerce.example.com/import/")
    )
    assert client._url("Get") == "https://commerce.example.com/import/Get"


def test_session_headers_and_verification(config):
    """Test that the session carries the API key and verifies TLS by default."""
    client = CatalogClient(config)
    assert client.session.headers["apikey"] == "target-key"
    assert client.session.verify


def test_session_insecure():
    """Test that insecure mode disables TLS verification."""
    client = CatalogClient(make_config(insecure=True))
    assert not client.session.verify


@patch("catalog_sync.core.client.requests.Session.get")
def test_validate_connection(mock_get, config):
    """Test the greeting call."""
    mock_get.return_value = _response("Catalog import API 1.0")
    client = CatalogClient(config)
    assert client.validate_connection() == "Catalog import API 1.0"
    assert mock_get.call_args[0][0] == "https://commerce.example.com/import/Get"


@patch("catalog_sync.core.client.requests.Session.post")
def test_delete_catalog_entry(mock_post, config):
    """Test that a delete posts the code as JSON body."""
    mock_post.return_value = _response(True)
    client = CatalogClient(config)
    assert client.delete_catalog_entry("w_30") is True
    call_args = mock_post.call_args
    assert call_args[0][0] == "https://commerce.example.com/import/DeleteCatalogEntry"
    assert call_args[1]["json"] == "w_30"


@patch("catalog_sync.core.client.requests.Session.post")
def test_empty_reply_is_false(mock_post, config):
    """Test that an empty body counts as a rejected call."""
    mock_post.return_value = _response(None)
    assert CatalogClient(config).delete_catalog_node("10") is False


@patch("catalog_sync.core.client.requests.Session.post")
def test_update_entry_relations_payload(mock_post):
    """Test the relation update payload built from node membership."""
    mock_post.return_value = _response(True)
    client = CatalogClient(make_config(channel_id_prefix="w_"))
    client.update_entry_relations(
        "w_30",
        1,
        "Web shop",
        "w_10",
        {"w_10": False, "w_20": True},
        "ChannelNodeItems",
        False,
        ["w_900"],
    )
    payload = mock_post.call_args[1]["json"]
    assert payload == {
        "CatalogEntryIdString": "w_30",
        "ChannelCode": "w_1",
        "ChannelName": "Web shop",
        "ParentEntryId": "w_10",
        "RemoveFromChannelNodes": ["w_10"],
        "ParentExistsInChannelNodes": True,
        "IsRelation": False,
        "LinkTypeId": "ChannelNodeItems",
        "LinkEntityIdsToRemove": ["w_900"],
    }


@patch("catalog_sync.core.client.requests.Session.post")
def test_link_entity_associations(mock_post, config):
    """Test that association codes come back as strings."""
    mock_post.return_value = _response([900, "901"])
    codes = CatalogClient(config).get_link_entity_associations_for_entity(
        "ProductAccessories", "Web shop", ["40"], ["41"]
    )
    assert codes == ["900", "901"]
    assert mock_post.call_args[1]["json"]["TargetIds"] == ["41"]


@patch("catalog_sync.core.client.time.sleep")
@patch("catalog_sync.core.client.requests.Session.get")
@patch("catalog_sync.core.client.requests.Session.post")
def test_import_catalog_polls_while_importing(mock_post, mock_get, mock_sleep, config):
    """Test that a running import is polled until it settles."""
    mock_post.return_value = _response("importing")
    mock_get.side_effect = [_response("importing"), _response("done")]

    assert CatalogClient(config).import_catalog(b"<Catalogs/>", "guid-1") is True

    assert mock_post.call_args[1]["json"] == {
        "ChannelGuid": "guid-1",
        "Document": "<Catalogs/>",
    }
    assert mock_get.call_count == 2
    assert mock_get.call_args[0][0].endswith("/IsImporting")
    assert mock_sleep.call_count == 2


@patch("catalog_sync.core.client.requests.Session.post")
def test_import_catalog_error_status(mock_post, config):
    """Test that an ERROR status fails the import."""
    mock_post.return_value = _response("ERROR: bad document")
    assert CatalogClient(config).import_catalog(b"<Catalogs/>", "guid-1") is False


@patch("catalog_sync.core.client.requests.Session.post")
def test_import_resources_rejected(mock_post, config, caplog):
    """Test that a falsy answer rejects the resource import."""
    mock_post.return_value = _response(False)
    assert CatalogClient(config).import_resources(b"<Resources/>") is False
    assert "Resource import was rejected" in caplog.text


@patch("catalog_sync.core.client.requests.Session.post")
def test_completion_calls(mock_post, config):
    """Test the import and delete completion payloads."""
    mock_post.return_value = _response(True)
    client = CatalogClient(config)
    client.import_update_completed("Web shop", "EntityAdded", True)
    assert mock_post.call_args[1]["json"] == {
        "CatalogName": "Web shop",
        "EventType": "EntityAdded",
        "ResourcesIncluded": True,
    }
    client.delete_completed("Web shop", "LinkDeleted")
    assert mock_post.call_args[0][0].endswith("/DeleteCompleted")


@patch("catalog_sync.core.client.requests.Session.post")
def test_http_error_propagates(mock_post, config):
    """Test that HTTP error statuses are raised, not retried."""
    mock_post.return_value = _response(status_code=500)
    with pytest.raises(requests.HTTPError):
        CatalogClient(make_config(max_retries=3)).delete_catalog_entry("30")
    assert mock_post.call_count == 1


@patch("time.sleep")
@patch("catalog_sync.core.client.requests.Session.post")
def test_connection_error_retried(mock_post, mock_sleep):
    """Test that connection errors are retried up to max_retries."""
    mock_post.side_effect = [requests.ConnectionError("reset"), _response(True)]
    client = CatalogClient(make_config(max_retries=3))
    assert client.delete_catalog_entry("30") is True
    assert mock_post.call_count == 2


@patch("time.sleep")
@patch("catalog_sync.core.client.requests.Session.post")
def test_retries_exhausted(mock_post, mock_sleep):
    """Test that the last transient error is re-raised."""
    mock_post.side_effect = requests.Timeout("slow")
    with pytest.raises(requests.Timeout):
        CatalogClient(make_config(max_retries=2)).delete_catalog_entry("30")
    assert mock_post.call_count == 2


def test_post_document_without_listener(config):
    """Test that documents are not posted when no listener is configured."""
    assert CatalogClient(config).post_document("deleted", b"<deleted/>") is False


@patch("catalog_sync.core.client.requests.Session.post")
def test_post_document(mock_post):
    """Test that documents go to the listener as XML."""
    mock_post.return_value = _response(None)
    client = CatalogClient(
        make_config(document_post_url="https://hooks.example.com/docs")
    )
    assert client.post_document("deleted", b"<deleted/>") is True
    call_args = mock_post.call_args
    assert call_args[0][0] == "https://hooks.example.com/docs"
    assert call_args[1]["data"] == b"<deleted/>"
    assert call_args[1]["headers"]["X-Document-Kind"] == "deleted"
