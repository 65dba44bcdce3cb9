"""Tests for mcp/tools/errors.py: error response builders.

Covers:
- build_error_response() structure and format
- translate_http_error() status and domain mapping
"""

import mcp.types as types
import pytest
import requests

from catalog_sync.mcp.tools.errors import build_error_response, translate_http_error


def _get_error_text(result: types.CallToolResult) -> str:
    """Extract text from first content item with type narrowing for Pyright."""
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def _http_error(status: int | None) -> requests.HTTPError:
    if status is None:
        return requests.HTTPError("connection reset")
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} Client Error", response=response)


class TestBuildErrorResponse:
    """Tests for build_error_response()."""

    def test_is_error_result(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_error_format(self):
        """Text format is 'Error ({type}): {message}\\n\\nAction: {action}'."""
        result = build_error_response(
            "channel_mismatch", "Wrong channel", "Send events for channel 1."
        )
        assert _get_error_text(result) == (
            "Error (channel_mismatch): Wrong channel\n\nAction: Send events for channel 1."
        )


class TestTranslateHttpError:
    """Tests for translate_http_error()."""

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (404, "not_found"),
            (401, "permission_denied"),
            (403, "permission_denied"),
            (500, "server_error"),
            (None, "server_error"),
        ],
    )
    def test_status_mapping(self, status, error_type):
        text = _get_error_text(translate_http_error(_http_error(status), "entity"))
        assert text.startswith(f"Error ({error_type}):")

    def test_entity_domain_action(self):
        text = _get_error_text(translate_http_error(_http_error(404), "entity"))
        assert "belongs to the channel" in text

    def test_link_domain_action(self):
        text = _get_error_text(translate_http_error(_http_error(404), "link"))
        assert "link type id" in text

    def test_unknown_domain_falls_back_to_sync(self):
        text = _get_error_text(translate_http_error(_http_error(404), "other"))
        assert "CATALOG_SYNC_ENDPOINT" in text

    def test_permission_action_names_keys(self):
        text = _get_error_text(translate_http_error(_http_error(401), "sync"))
        assert "CATALOG_SYNC_API_KEY" in text
