"""Durable local state for screencoach."""

from screencoach.storage.state import LocalStateStore

__all__ = ["LocalStateStore"]
