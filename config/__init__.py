"""Configuration for the Cupid Co-Pilot backend."""

from .settings import Settings

__all__ = ["Settings"]
