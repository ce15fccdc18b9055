"""Proxy configuration records and YAML loader.

Proxy lists come from an external source at startup: the
``SCRAPEGUARD_PROXIES`` JSON env var (parsed by the settings class) and/or
a YAML file shaped like::

    proxies:
      - id: residential-1
        host: proxy1.example.com
        port: 8080
        protocol: http
        username: user1
        password: pass1
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ProxyConfig(BaseModel):
    """One egress path as configured. Runtime health lives on ``Proxy``."""

    id: str | None = None
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    protocol: str = Field(default="http", pattern=r"^(http|https|socks4|socks5)$")
    username: str | None = None
    password: str | None = None


def load_proxy_configs(yaml_path: str) -> list[ProxyConfig]:
    """Parse a proxy list YAML file into ``ProxyConfig`` records.

    A missing or unparsable file yields an empty list; invalid entries are
    logged and skipped.
    """
    path = Path(yaml_path)

    if not path.exists():
        logger.warning("Proxy config file not found at %s, running without proxies", yaml_path)
        return []

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse proxy config YAML at %s: %s", yaml_path, exc)
        return []

    if not isinstance(raw, dict) or not isinstance(raw.get("proxies"), list):
        logger.warning("Proxy config YAML missing 'proxies' list, running without proxies")
        return []

    configs: list[ProxyConfig] = []
    for index, entry in enumerate(raw["proxies"]):
        try:
            configs.append(ProxyConfig.model_validate(entry))
        except Exception as exc:
            logger.error("Invalid proxy entry #%d: %s, skipping", index, exc)

    return configs
