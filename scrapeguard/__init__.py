"""Resilient extraction against rate-limited, bot-hostile targets."""

__version__ = "1.0.0"
