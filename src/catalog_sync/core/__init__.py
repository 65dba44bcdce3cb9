"""Source and target clients shared by the sync engine and the MCP server."""

from .async_utils import run_exclusive, run_sync
from .client import CatalogClient
from .source import SourceClient, SourceService

__all__ = [
    "CatalogClient",
    "SourceClient",
    "SourceService",
    "run_exclusive",
    "run_sync",
]
