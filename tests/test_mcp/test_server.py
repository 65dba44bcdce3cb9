"""Tests for the MCP server module: dispatch, ping and CLI entry point."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import make_config

from catalog_sync.mcp import server
from catalog_sync.mcp.tools import ALL_SPECS, ToolRegistry
from catalog_sync.sync.router import ChangeRouter


@pytest.fixture
def wired(source, catalog):
    """Install a router and the full registry as the server globals."""
    router = ChangeRouter(source, catalog, make_config())
    server.set_router(router)
    server.set_registry(ToolRegistry([server.PING_SPEC] + ALL_SPECS))
    yield router
    server.set_router(None)
    server.set_registry(None)


class TestGlobals:
    def test_router_not_initialized(self):
        server.set_router(None)
        with pytest.raises(RuntimeError, match="ChangeRouter not initialized"):
            server.get_router()

    def test_registry_not_initialized(self):
        server.set_registry(None)
        with pytest.raises(RuntimeError, match="ToolRegistry not initialized"):
            server.get_registry()


class TestHandlers:
    async def test_list_tools_includes_ping(self, wired):
        names = [t.name for t in await server.handle_list_tools()]
        assert names[0] == "ping"
        assert "channel_link_deleted" in names

    async def test_ping(self, wired):
        result = await server.handle_call_tool("ping", {})
        assert not result.isError
        assert "channel 1" in result.content[0].text
        assert "Catalog import API 1.0" in result.content[0].text

    async def test_ping_failure(self):
        router = MagicMock()
        router.client.validate_connection.side_effect = ConnectionError("refused")
        result = await server._handle_ping(router, {})
        assert result.isError
        assert "Target connection failed: refused" in result.content[0].text

    async def test_unknown_tool(self, wired):
        result = await server.handle_call_tool("create_ticket", {})
        assert result.isError
        assert "Error (unknown_tool): Unknown tool: create_ticket" in result.content[0].text


class TestRun:
    def test_init_config_writes_starter_and_exits(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", lambda: tmp_path / "home")
        monkeypatch.delenv("CATALOG_SYNC_CONFIG", raising=False)
        monkeypatch.setattr(sys, "argv", ["catalog-sync-server", "--init-config"])
        with patch("catalog_sync.mcp.server.asyncio.run") as asyncio_run:
            server.run()
        asyncio_run.assert_not_called()
        assert (tmp_path / ".catalog_sync" / "config.yml").exists()
        assert "Config file:" in capsys.readouterr().err

    def test_overrides_passed_to_main(self, monkeypatch, capsys):
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "catalog-sync-server",
                "--endpoint",
                "https://commerce.example.com/import",
                "--api-key",
                "secret",
                "--channel-id",
                "7",
            ],
        )
        with (
            patch("catalog_sync.mcp.server.main", new=MagicMock()) as main,
            patch("catalog_sync.mcp.server.asyncio.run") as asyncio_run,
        ):
            server.run()
        asyncio_run.assert_called_once()
        overrides = main.call_args.kwargs["config_overrides"]
        assert overrides["endpoint_url"] == "https://commerce.example.com/import"
        assert overrides["channel_id"] == 7
        err = capsys.readouterr().err
        assert "endpoint_url" in err
        assert "secret" not in err

    def test_runtime_error_exits_nonzero(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["catalog-sync-server"])
        with (
            patch("catalog_sync.mcp.server.main", new=MagicMock()),
            patch(
                "catalog_sync.mcp.server.asyncio.run",
                side_effect=RuntimeError("Configuration error"),
            ),
        ):
            with pytest.raises(SystemExit) as exc:
                server.run()
        assert exc.value.code == 1
