"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
so an agent driving the sync server can recover without human
intervention, and translates HTTP failures from the source or target
API into those responses.
"""

import requests

import mcp.types as types


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            validation_error, channel_mismatch, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("validation_error", "entity_id is required", "Provide entity_id.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Domain-specific corrective action messages
# ---------------------------------------------------------------------------

_DOMAIN_MESSAGES: dict[str, dict[str, str]] = {
    "entity": {
        "not_found": "Verify the entity id exists in the source and belongs to the channel.",
        "permission": "Check CATALOG_SYNC_SOURCE_API_KEY and CATALOG_SYNC_API_KEY.",
        "server": "Retry the event later; the target may still be importing.",
    },
    "link": {
        "not_found": "Verify both link endpoints exist and the link type id is correct.",
        "permission": "Check CATALOG_SYNC_SOURCE_API_KEY and CATALOG_SYNC_API_KEY.",
        "server": "Retry the event later; the target may still be importing.",
    },
    "sync": {
        "not_found": "Check CATALOG_SYNC_ENDPOINT and CATALOG_SYNC_SOURCE_URL.",
        "permission": "Check CATALOG_SYNC_SOURCE_API_KEY and CATALOG_SYNC_API_KEY.",
        "server": "Check source and target connectivity, then retry.",
    },
}


def translate_http_error(
    error: requests.HTTPError,
    domain: str,
) -> types.CallToolResult:
    """Translate an HTTP error from the source or target API.

    Args:
        error: HTTP error raised by ``response.raise_for_status()``
        domain: Operation domain ("entity", "link", "sync")

    Returns:
        CallToolResult with isError=True and corrective action
    """
    msgs = _DOMAIN_MESSAGES.get(domain, _DOMAIN_MESSAGES["sync"])
    status = error.response.status_code if error.response is not None else None

    match status:
        case 404:
            return build_error_response("not_found", str(error), msgs["not_found"])
        case 401 | 403:
            return build_error_response(
                "permission_denied", str(error), msgs["permission"]
            )
        case _:
            return build_error_response("server_error", str(error), msgs["server"])
