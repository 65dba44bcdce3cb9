from unittest.mock import Mock, patch

import pytest
import requests

from catalog_sync.core.source import SourceClient
from catalog_sync.sync.models import LoadLevel


def _response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


@patch("catalog_sync.core.source.requests.Session.get")
def test_get_entity(mock_get, config):
    """Test that an entity is fetched with the requested load level."""
    mock_get.return_value = _response(
        {"id": 10, "entity_type_id": "ChannelNode", "display_name": "Shoes"}
    )
    entity = SourceClient(config).get_entity(10, LoadLevel.DATA_AND_LINKS)

    assert entity.id == 10
    assert entity.display_name == "Shoes"
    assert entity.load_level == LoadLevel.DATA_AND_LINKS
    call_args = mock_get.call_args
    assert call_args[0][0] == "https://pim.example.com/api/entities/10"
    assert call_args[1]["params"] == {"level": "DATA_AND_LINKS"}


@patch("catalog_sync.core.source.requests.Session.get")
def test_get_entity_not_found(mock_get, config):
    """Test that a 404 means the entity does not exist."""
    mock_get.return_value = _response(status_code=404)
    assert SourceClient(config).get_entity(99, LoadLevel.SHALLOW) is None


@patch("catalog_sync.core.source.requests.Session.get")
def test_server_error_raises(mock_get, config):
    """Test that other error statuses propagate."""
    mock_get.return_value = _response(status_code=500)
    with pytest.raises(requests.HTTPError):
        SourceClient(config).get_entity(10, LoadLevel.SHALLOW)


@patch("catalog_sync.core.source.requests.Session.get")
def test_structure_for_type(mock_get, config):
    """Test structure rows for one entity type."""
    mock_get.return_value = _response(
        [
            {
                "entity_id": 10,
                "parent_id": 1,
                "path": "1/10",
                "entity_type_id": "ChannelNode",
                "link_type_id_from_parent": "ChannelChannelNodes",
            }
        ]
    )
    rows = SourceClient(config).get_all_structure_entities_for_type(1, "ChannelNode")

    assert [r.path for r in rows] == ["1/10"]
    call_args = mock_get.call_args
    assert call_args[0][0] == "https://pim.example.com/api/channels/1/structure"
    assert call_args[1]["params"] == {"entityTypeId": "ChannelNode"}


@patch("catalog_sync.core.source.requests.Session.get")
def test_field_history_sorted(mock_get, config):
    """Test that field revisions come back ordered by revision."""
    mock_get.return_value = _response(
        [
            {"name": "SKUs", "data": "<SKUs/>", "revision": 2},
            {"name": "SKUs", "data": None, "revision": 1},
        ]
    )
    history = SourceClient(config).get_field_history(30, "SKUs")
    assert [f.revision for f in history] == [1, 2]


@patch("catalog_sync.core.source.requests.Session.get")
def test_missing_field(mock_get, config):
    """Test that a missing field is None."""
    mock_get.return_value = _response(status_code=404)
    assert SourceClient(config).get_field(30, "SKUs") is None


@patch("catalog_sync.core.source.requests.Session.get")
def test_entity_exists_in_channel(mock_get, config):
    """Test the membership check."""
    mock_get.return_value = _response(False)
    assert SourceClient(config).entity_exists_in_channel(1, 30) is False
    assert mock_get.call_args[0][0].endswith("/channels/1/entities/30/exists")
