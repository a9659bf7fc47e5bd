"""Termhost - platform layer of a desktop terminal: durable config and local file transfers."""

from .core.version import __app_name__, __version__

__all__ = ["__app_name__", "__version__"]
