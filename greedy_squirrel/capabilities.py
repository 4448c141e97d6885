"""Presentation capabilities consumed by the spin pipeline.

The core never touches a display surface directly. Every capability is
optional: a missing renderer, sound player or timer registry is replaced
by a no-op implementation.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from greedy_squirrel.logic.models import Position


logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """Display adapter. Awaitables resolve when the display has finished."""

    async def show_message(self, text: str, amount: float | None = None) -> None:
        ...

    def highlight_positions(self, positions: Sequence[Position]) -> None:
        ...

    def show_feature_overlay(self, kind: str, payload: dict[str, Any]) -> Any | None:
        """Show an overlay and return its handle, or None when no overlay can be shown."""
        ...

    def hide_feature_overlay(self, handle: Any) -> None:
        ...

    def update_display(self, snapshot: dict[str, Any]) -> None:
        ...

    async def reel_stopped(self, reel_index: int, symbols: Sequence[str]) -> None:
        ...

    async def cascade_step(
        self, grid: Sequence[Sequence[str]], positions: Sequence[Position], multiplier: int
    ) -> None:
        ...


class SoundPlayer(Protocol):
    """Fire-and-forget sound effects."""

    def play(self, effect: str, **params: Any) -> None:
        ...


class NullRenderer:
    """Headless renderer: every call is a no-op and no overlay is ever shown."""

    async def show_message(self, text: str, amount: float | None = None) -> None:
        return None

    def highlight_positions(self, positions: Sequence[Position]) -> None:
        return None

    def show_feature_overlay(self, kind: str, payload: dict[str, Any]) -> Any | None:
        return None

    def hide_feature_overlay(self, handle: Any) -> None:
        return None

    def update_display(self, snapshot: dict[str, Any]) -> None:
        return None

    async def reel_stopped(self, reel_index: int, symbols: Sequence[str]) -> None:
        return None

    async def cascade_step(
        self, grid: Sequence[Sequence[str]], positions: Sequence[Position], multiplier: int
    ) -> None:
        return None


class NullSound:
    def play(self, effect: str, **params: Any) -> None:
        return None


class TimerCancelled(Exception):
    """Raised in a `sleep` waiter when its timer is cleared before it fires."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Timer '{label}' was cleared")


@dataclass
class _Timer:
    label: str
    handle: asyncio.TimerHandle
    future: asyncio.Future | None = None


class TimerRegistry:
    """
    Labelled asyncio timers with bulk cancellation.

    Labels group timers by purpose ("reel", "cascade", "gamble-offer", ...)
    so error rollback can cancel everything pending for a spin at once.
    Clearing a pending `sleep` raises TimerCancelled in its waiter, so the
    pipeline treats it like any other failure and rolls the spin back.
    """

    def __init__(self, time_scale: float = 1.0):
        self.time_scale = time_scale
        self._timers: dict[int, _Timer] = {}
        self._next_id = 1

    def _allocate(self) -> int:
        timer_id = self._next_id
        self._next_id += 1
        return timer_id

    def _scaled(self, delay: float) -> float:
        return max(0.0, delay * self.time_scale)

    def _run_callback(self, timer_id: int, callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Timer %d callback failed", timer_id)

    def set_timeout(self, delay: float, callback: Callable[[], Any], label: str = "default") -> int:
        loop = asyncio.get_running_loop()
        timer_id = self._allocate()

        def fire() -> None:
            self._timers.pop(timer_id, None)
            self._run_callback(timer_id, callback)

        handle = loop.call_later(self._scaled(delay), fire)
        self._timers[timer_id] = _Timer(label=label, handle=handle)
        return timer_id

    def set_interval(
        self, interval: float, callback: Callable[[], Any], label: str = "default"
    ) -> int:
        loop = asyncio.get_running_loop()
        timer_id = self._allocate()

        def tick() -> None:
            entry = self._timers.get(timer_id)
            if entry is None:
                return
            entry.handle = loop.call_later(self._scaled(interval), tick)
            self._run_callback(timer_id, callback)

        handle = loop.call_later(self._scaled(interval), tick)
        self._timers[timer_id] = _Timer(label=label, handle=handle)
        return timer_id

    async def sleep(self, delay: float, label: str = "default") -> None:
        """Wait for `delay` seconds unless the label is cleared first."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def resolve() -> None:
            if not future.done():
                future.set_result(None)

        timer_id = self.set_timeout(delay, resolve, label)
        self._timers[timer_id].future = future
        try:
            await future
        finally:
            self._timers.pop(timer_id, None)

    def clear(self, timer_id: int) -> bool:
        entry = self._timers.pop(timer_id, None)
        if entry is None:
            return False
        entry.handle.cancel()
        if entry.future is not None and not entry.future.done():
            entry.future.set_exception(TimerCancelled(entry.label))
        return True

    def clear_by_label(self, label: str) -> int:
        ids = [tid for tid, entry in self._timers.items() if entry.label == label]
        for timer_id in ids:
            self.clear(timer_id)
        if ids:
            logger.debug("Cleared %d timers labelled %s", len(ids), label)
        return len(ids)

    def clear_all(self) -> int:
        ids = list(self._timers)
        for timer_id in ids:
            self.clear(timer_id)
        return len(ids)

    def active_count(self, label: str | None = None) -> int:
        if label is None:
            return len(self._timers)
        return sum(1 for entry in self._timers.values() if entry.label == label)


class InstantTimers(TimerRegistry):
    """Timer registry that fires every timer on the next loop iteration (tests, simulation)."""

    def __init__(self):
        super().__init__(time_scale=0.0)
