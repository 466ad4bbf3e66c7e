"""Shared helpers."""
from .events import BatchProgress, EventEmitter, ParseProgress

__all__ = ["BatchProgress", "EventEmitter", "ParseProgress"]
