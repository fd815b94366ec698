"""Core utilities shared across mto."""

from mto.core.events import EventHook

__all__ = ["EventHook"]
