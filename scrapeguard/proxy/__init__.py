"""Proxy management package: rotation, health tracking and quarantine."""

from scrapeguard.proxy.manager import ProxyManager
from scrapeguard.proxy.types import Proxy

__all__ = ["Proxy", "ProxyManager"]
