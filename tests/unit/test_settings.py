"""Unit tests for ScrapeGuardSettings and the proxy config loader."""

import pytest
from pydantic import ValidationError

from scrapeguard.config.proxies import ProxyConfig, load_proxy_configs
from scrapeguard.config.settings import DEFAULT_CHALLENGE_URL_PATTERNS, ScrapeGuardSettings


class TestDefaults:
    def test_defaults(self):
        s = ScrapeGuardSettings()
        assert s.pool_capacity == 2
        assert s.retry_max_attempts == 3
        assert s.cooldown_min_ms == 300_000
        assert s.cooldown_max_ms == 3_600_000
        assert s.backoff_multiplier == 2.0
        assert s.cache_ttl_seconds == 600
        assert s.session_refresh_fraction == 0.8
        assert s.block_status_codes == [429, 403, 401]
        assert s.challenge_url_patterns == DEFAULT_CHALLENGE_URL_PATTERNS
        assert s.proxies == []

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SCRAPEGUARD_POOL_CAPACITY", "4")
        monkeypatch.setenv("SCRAPEGUARD_REQUIRE_PROXY", "true")
        s = ScrapeGuardSettings()
        assert s.pool_capacity == 4
        assert s.require_proxy is True

    def test_proxies_from_json_env(self, monkeypatch):
        monkeypatch.setenv(
            "SCRAPEGUARD_PROXIES",
            '[{"id": "a", "host": "proxy.example.net", "port": 3128}]',
        )
        s = ScrapeGuardSettings()
        assert s.proxies == [ProxyConfig(id="a", host="proxy.example.net", port=3128)]


class TestValidation:
    def test_pool_capacity_upper_bound(self):
        with pytest.raises(ValidationError):
            ScrapeGuardSettings(pool_capacity=21)

    def test_pool_capacity_lower_bound(self):
        with pytest.raises(ValidationError):
            ScrapeGuardSettings(pool_capacity=0)

    def test_max_delay_below_base_rejected(self):
        with pytest.raises(ValidationError):
            ScrapeGuardSettings(base_delay_ms=5000, max_delay_ms=1000)

    def test_cooldown_max_below_min_rejected(self):
        with pytest.raises(ValidationError):
            ScrapeGuardSettings(cooldown_min_ms=10_000, cooldown_max_ms=5_000)

    def test_refresh_fraction_range(self):
        with pytest.raises(ValidationError):
            ScrapeGuardSettings(session_refresh_fraction=1.5)


class TestProxyConfig:
    def test_protocol_pattern(self):
        with pytest.raises(ValidationError):
            ProxyConfig(host="h", port=1, protocol="ftp")

    def test_port_range(self):
        with pytest.raises(ValidationError):
            ProxyConfig(host="h", port=70000)


class TestLoadProxyConfigs:
    def test_missing_file(self, tmp_path):
        assert load_proxy_configs(str(tmp_path / "nope.yaml")) == []

    def test_valid_file(self, tmp_path):
        path = tmp_path / "proxies.yaml"
        path.write_text(
            "proxies:\n"
            "  - id: res-1\n"
            "    host: proxy1.example.com\n"
            "    port: 8080\n"
            "  - host: proxy2.example.com\n"
            "    port: 1080\n"
            "    protocol: socks5\n"
        )
        configs = load_proxy_configs(str(path))
        assert [c.host for c in configs] == ["proxy1.example.com", "proxy2.example.com"]
        assert configs[1].protocol == "socks5"

    def test_invalid_entries_skipped(self, tmp_path):
        path = tmp_path / "proxies.yaml"
        path.write_text(
            "proxies:\n"
            "  - host: good.example.com\n"
            "    port: 8080\n"
            "  - host: bad.example.com\n"
            "    port: 0\n"
        )
        assert [c.host for c in load_proxy_configs(str(path))] == ["good.example.com"]

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "proxies.yaml"
        path.write_text("proxies: [unclosed\n")
        assert load_proxy_configs(str(path)) == []

    def test_missing_key(self, tmp_path):
        path = tmp_path / "proxies.yaml"
        path.write_text("other: 1\n")
        assert load_proxy_configs(str(path)) == []
