"""Pytest fixtures for spin pipeline tests."""
from typing import Any, Callable, Sequence

import pytest

from greedy_squirrel.capabilities import InstantTimers
from greedy_squirrel.config import Settings
from greedy_squirrel.context import GameContext, build_context
from greedy_squirrel.logic.rng import RNGBase
from greedy_squirrel.orchestrator import SpinOrchestrator
from greedy_squirrel.persistence import MemorySaveStore, PersistenceCodec
from greedy_squirrel.progression.achievements import Achievements
from greedy_squirrel.telemetry import TelemetryService


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (long seeded simulations)"
    )


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._last_ttl: int | None = None  # Track last SETEX TTL

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        self._last_ttl = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._store[key] = value
        self._last_ttl = ttl
        return True

    async def delete(self, key: str) -> int:
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()
        self._last_ttl = None


class ScriptedRNG(RNGBase):
    """
    Deterministic RNG that replays queued values.

    Once a queue is empty the fallback value is returned: random() falls
    back to `default_random`, randint(a, b) falls back to `a`.
    """

    def __init__(
        self,
        randoms: Sequence[float] = (),
        ints: Sequence[int] = (),
        default_random: float = 0.99,
    ):
        self.randoms = list(randoms)
        self.ints = list(ints)
        self.default_random = default_random

    def random(self) -> float:
        if self.randoms:
            return self.randoms.pop(0)
        return self.default_random

    def randint(self, a: int, b: int) -> int:
        if self.ints:
            return min(max(self.ints.pop(0), a), b)
        return a


class RecordingSink:
    """Telemetry sink that keeps every event."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


class RecordingRenderer:
    """
    Renderer that records calls.

    `overlay_hook(kind, payload)` runs when an overlay is shown; when set,
    an overlay handle is returned so the pipeline waits for player input.
    Without a hook the renderer behaves headless for overlays.
    """

    def __init__(self):
        self.messages: list[str] = []
        self.highlights: list[list[Any]] = []
        self.snapshots: list[dict[str, Any]] = []
        self.stopped_reels: list[int] = []
        self.cascade_steps: list[int] = []
        self.overlays: list[str] = []
        self.hidden: list[Any] = []
        self.overlay_hook: Callable[[str, dict[str, Any]], None] | None = None

    async def show_message(self, text: str, amount: float | None = None) -> None:
        self.messages.append(text)

    def highlight_positions(self, positions) -> None:
        self.highlights.append(list(positions))

    def show_feature_overlay(self, kind: str, payload: dict[str, Any]) -> Any | None:
        self.overlays.append(kind)
        if self.overlay_hook is None:
            return None
        handle = f"{kind}-{len(self.overlays)}"
        self.overlay_hook(kind, payload)
        return handle

    def hide_feature_overlay(self, handle: Any) -> None:
        self.hidden.append(handle)

    def update_display(self, snapshot: dict[str, Any]) -> None:
        self.snapshots.append(snapshot)

    async def reel_stopped(self, reel_index: int, symbols) -> None:
        self.stopped_reels.append(reel_index)

    async def cascade_step(self, grid, positions, multiplier: int) -> None:
        self.cascade_steps.append(multiplier)


def uniform_strips(*symbols: str, length: int = 3) -> list[list[str]]:
    """One strip per reel, each filled with a single symbol, so any stop shows it."""
    return [[symbol] * length for symbol in symbols]


LOSING_STRIPS = ("LEAF", "MUSHROOM", "LEAF", "MUSHROOM", "LEAF")
PINECONE_STRIPS = ("PINECONE",) * 5
SCATTER_STRIPS = ("SCATTER", "SCATTER", "SCATTER", "LEAF", "LEAF")
BONUS_STRIPS = ("BONUS", "LEAF", "BONUS", "MUSHROOM", "BONUS")


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def scripted_rng() -> ScriptedRNG:
    return ScriptedRNG()


@pytest.fixture
def config() -> Settings:
    return Settings()


@pytest.fixture
def context(
    config: Settings,
    scripted_rng: ScriptedRNG,
    renderer: RecordingRenderer,
    sink: RecordingSink,
) -> GameContext:
    """
    Headless context with instant timers and no level system.

    Achievements are emptied so credit assertions only see spin payouts.
    """
    ctx = build_context(
        config,
        rng=scripted_rng,
        anticipation_rng=ScriptedRNG(),
        renderer=renderer,
        timers=InstantTimers(),
        telemetry=TelemetryService(sink),
        with_levels=False,
    )
    ctx.achievements = Achievements(ctx.state, definitions=[])
    ctx.reel_strips = uniform_strips(*LOSING_STRIPS)
    return ctx


@pytest.fixture
def save_store() -> MemorySaveStore:
    return MemorySaveStore()


@pytest.fixture
def codec(save_store: MemorySaveStore, config: Settings) -> PersistenceCodec:
    return PersistenceCodec(save_store, key="test-save", config=config)


@pytest.fixture
def orchestrator(context: GameContext, codec: PersistenceCodec) -> SpinOrchestrator:
    return SpinOrchestrator(context, codec)
