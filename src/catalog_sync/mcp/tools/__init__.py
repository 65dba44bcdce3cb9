"""MCP tool handlers for catalog sync operations.

This package contains MCP tool implementations that wrap the ChangeRouter
with async handlers, per-channel serialization, and structured error
responses.
"""

from .errors import build_error_response, translate_http_error
from .events import EVENT_SPECS, EVENT_TOOLS
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .status import STATUS_SPECS, STATUS_TOOLS

ALL_SPECS: list[ToolSpec] = EVENT_SPECS + STATUS_SPECS

__all__ = [
    "build_error_response",
    "translate_http_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Spec lists
    "ALL_SPECS",
    "EVENT_SPECS",
    "STATUS_SPECS",
    # Tool lists
    "EVENT_TOOLS",
    "STATUS_TOOLS",
]
