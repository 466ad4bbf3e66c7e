from dataclasses import dataclass
from typing import Dict, List, Callable, Optional
import asyncio
import inspect
import logging
logger = logging.getLogger(__name__)


@dataclass
class ParseProgress:
    """Progress information for a running parse."""
    rows_processed: int = 0
    percent: int = 0
    background: bool = False


@dataclass
class BatchProgress:
    """Progress information for one settled batch."""
    index: int
    size: int
    created: int = 0
    status: str = "pending"  # pending, sending, committed, skipped, failed
    error: Optional[str] = None


class EventEmitter:
    """Simple event emitter for parse and import events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._lock = asyncio.Lock()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def clear(self):
        """Drop every listener."""
        self._listeners.clear()

    async def emit(self, event_name: str, *args, **kwargs):
        """
        Emit an event to all listeners.

        Listeners run outside the lock, so a listener may emit on the same
        emitter (e.g. a change listener that resets the session).
        """
        if event_name not in self._listeners:
            return

        async with self._lock:
            callbacks = self._listeners[event_name][:]

        for callback in callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(*args, **kwargs)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
