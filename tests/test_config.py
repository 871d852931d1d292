"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from iptv_service.config import CustomSettings


class TestCustomSettings:

    def test_defaults_are_valid(self):
        settings = CustomSettings()
        assert settings.default_group == "其他"
        assert settings.rule_set().default_group == "其他"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"channel_logo_rules": [{"rule": "^CCTV(.+)$", "name": "CCTV$G2"}]},
            {"channel_group_rules": [{"name": "央视", "rules": ["^(CCTV"]}]},
            {"channel_exclude_rule": "(画中画"},
            {"default_group": ""},
            {"epg_refresh_cron": "every day"},
            {"epg_dialect": "shanghai"},
            {"timezone": "Mars/Olympus"},
            {"udpxy_urls": {"home": "192.168.1.1:4022"}},
            {"provider_host": "http://10.0.0.1:8082"},
            {"epg_back_days": 31},
            {"channel_refresh_max_retries": 0},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides):
        with pytest.raises(ValidationError):
            CustomSettings(**overrides)

    def test_dialect_is_normalized(self):
        assert CustomSettings(epg_dialect=" Dated ").epg_dialect == "dated"

    def test_default_udpxy_url(self):
        settings = CustomSettings(udpxy_urls={"b": "http://b:4022", "a": "http://a:4022"})

        assert settings.default_udpxy_url() == "http://a:4022"
        assert settings.default_udpxy_url("b") == "http://b:4022"
        assert settings.default_udpxy_url("missing") == ""
        assert CustomSettings().default_udpxy_url() == ""
