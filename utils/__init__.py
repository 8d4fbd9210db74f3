"""Shared helpers."""

from .clock import now_ms

__all__ = ["now_ms"]
