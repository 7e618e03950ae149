"""Route group exports."""

from . import customers, health, maps

__all__ = ["customers", "health", "maps"]
