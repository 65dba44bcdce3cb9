"""Tests for catalog_sync.config_schema: unified Pydantic config models.

Covers section defaults, validation bounds, build_config() from raw YAML
dicts, and the to_fallbacks() adapter feeding load_config().
"""

import pytest
from pydantic import ValidationError

from catalog_sync.config import load_config
from catalog_sync.config_schema import (
    ChannelConfig,
    TargetConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)


class TestSectionDefaults:
    def test_zero_config_is_valid(self):
        unified = UnifiedConfig()
        assert unified.target.endpoint_url is None
        assert unified.target.request_timeout == 60
        assert unified.channel.sku_field_name == "SKUs"
        assert unified.channel.max_delete_depth == 64
        assert unified.logging.level == "INFO"

    def test_sections_are_frozen(self):
        with pytest.raises(ValidationError):
            UnifiedConfig().channel.prefix = "w_"  # type: ignore[misc]


class TestValidation:
    @pytest.mark.parametrize("timeout", [0, 3601])
    def test_request_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            TargetConfig(request_timeout=timeout)

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            TargetConfig(import_poll_interval=0)

    def test_channel_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            ChannelConfig(id=0)

    def test_max_delete_depth_bounds(self):
        with pytest.raises(ValidationError):
            ChannelConfig(max_delete_depth=0)


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        unified = build_config(
            {
                "target": {"endpoint_url": "https://commerce.example.com/import"},
                "channel": {"id": 123, "items_to_skus": True},
            }
        )
        assert unified.target.endpoint_url == "https://commerce.example.com/import"
        assert unified.channel.id == 123
        assert unified.channel.items_to_skus is True
        assert unified.source.url is None

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"channel": {"max_delete_depth": "deep"}})


class TestToFallbacks:
    def test_none_values_dropped(self):
        flat = to_fallbacks(UnifiedConfig())
        assert "endpoint_url" not in flat
        assert "channel_id" not in flat
        assert "export_entity_types" not in flat
        assert flat["request_timeout"] == 60
        assert flat["channel_id_prefix"] == ""

    def test_sections_flattened_to_config_fields(self):
        flat = to_fallbacks(
            build_config(
                {
                    "source": {"url": "https://pim.example.com/api", "api_key": "k"},
                    "channel": {"id": 7, "prefix": "w_", "bundle_entity_types": ["Kit"]},
                }
            )
        )
        assert flat["source_url"] == "https://pim.example.com/api"
        assert flat["source_api_key"] == "k"
        assert flat["channel_id"] == 7
        assert flat["channel_id_prefix"] == "w_"
        assert flat["bundle_entity_types"] == ["Kit"]

    def test_feeds_load_config(self, monkeypatch):
        for key in (
            "CATALOG_SYNC_ENDPOINT",
            "CATALOG_SYNC_API_KEY",
            "CATALOG_SYNC_SOURCE_URL",
            "CATALOG_SYNC_SOURCE_API_KEY",
            "CATALOG_SYNC_CHANNEL_ID",
            "CATALOG_SYNC_CHANNEL_PREFIX",
        ):
            monkeypatch.delenv(key, raising=False)
        unified = build_config(
            {
                "target": {
                    "endpoint_url": "https://commerce.example.com/import",
                    "api_key": "target-key",
                },
                "source": {
                    "url": "https://pim.example.com/api",
                    "api_key": "source-key",
                },
                "channel": {"id": 123, "prefix": "w_"},
            }
        )
        config = load_config(yaml_fallbacks=to_fallbacks(unified))
        assert config.channel_id == 123
        assert config.channel_id_prefix == "w_"
        assert config.bundle_entity_types == ()
