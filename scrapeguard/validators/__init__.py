"""Target validation."""

from scrapeguard.validators.target import is_private_ip, normalize_target

__all__ = ["is_private_ip", "normalize_target"]
