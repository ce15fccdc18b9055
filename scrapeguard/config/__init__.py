"""Configuration module: settings and proxy lists."""

from scrapeguard.config.proxies import ProxyConfig, load_proxy_configs
from scrapeguard.config.settings import ScrapeGuardSettings

__all__ = [
    "ProxyConfig",
    "ScrapeGuardSettings",
    "load_proxy_configs",
]
