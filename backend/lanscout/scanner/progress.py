"""
Progress event stream shared by the full scan and the deep scan.

Probes finish in any order, so the reporter clamps every event: within one
phase the fractional progress and the counters never go backwards.
"""

import logging
import time
from dataclasses import fields, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")

ProgressCallback = Callable[[str, Any], Awaitable[None]]

# Counter fields that are clamped alongside ``progress``
_COUNTERS = ("devices_found", "ports_scanned", "ports_total", "open_ports_found")


class Throttle:
    """Lets an action through at most once per ``interval`` seconds."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._last = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False


class ProgressReporter(Generic[E]):
    """Holds the latest progress event and fans it out to async listeners."""

    def __init__(self, event_type: str, initial: E):
        self.event_type = event_type
        self._initial = initial
        self._current = initial
        self._callbacks: list[ProgressCallback] = []

    @property
    def current(self) -> E:
        return self._current

    def register_callback(self, callback: ProgressCallback) -> None:
        """Register a callback for progress updates."""
        self._callbacks.append(callback)

    def unregister_callback(self, callback: ProgressCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def reset(self) -> None:
        self._current = self._initial

    def _clamp(self, event: E) -> E:
        previous = self._current
        if getattr(previous, "phase", None) != getattr(event, "phase", None):
            return replace(event, progress=min(1.0, max(0.0, event.progress)))

        changes = {"progress": min(1.0, max(previous.progress, event.progress))}
        names = {f.name for f in fields(event)}
        for name in _COUNTERS:
            if name in names:
                changes[name] = max(getattr(previous, name), getattr(event, name))
        return replace(event, **changes)

    async def emit(self, event: E) -> E:
        self._current = self._clamp(event)
        await self._notify(self._current)
        return self._current

    async def update(self, **changes) -> E:
        """Emit a copy of the current event with ``changes`` applied."""
        return await self.emit(replace(self._current, **changes))

    async def _notify(self, event: E) -> None:
        for callback in list(self._callbacks):
            try:
                await callback(self.event_type, event)
            except Exception as e:
                logger.warning("Progress callback error: %s", e)
