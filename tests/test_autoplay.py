"""Tests for autoplay, turbo mode and the bonus buy-in."""
import asyncio

import pytest

from greedy_squirrel.capabilities import InstantTimers, TimerRegistry
from greedy_squirrel.config import BonusConfig, Settings, TimingConfig
from greedy_squirrel.context import GameContext, build_context
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.features.autoplay import Autoplay
from greedy_squirrel.features.buy_bonus import BuyBonus
from greedy_squirrel.features.turbo import TurboMode
from greedy_squirrel.orchestrator import SpinOrchestrator
from greedy_squirrel.progression.achievements import Achievements
from greedy_squirrel.progression.levels import LevelSystem
from greedy_squirrel.telemetry import TelemetryService
from tests.conftest import (
    LOSING_STRIPS,
    PINECONE_STRIPS,
    RecordingRenderer,
    RecordingSink,
    ScriptedRNG,
    uniform_strips,
)


class TestAutoplay:
    """Autoplay spins until a stop condition fires."""

    @pytest.mark.asyncio
    async def test_spin_limit(
        self, orchestrator: SpinOrchestrator, context: GameContext, renderer: RecordingRenderer
    ):
        reason = await orchestrator.autoplay.run(max_spins=3)

        assert reason == "Spin limit reached"
        assert orchestrator.autoplay.spins_played == 3
        assert context.state.credits == 970
        assert not orchestrator.autoplay.is_active()
        assert "Autoplay stopped: Spin limit reached" in renderer.messages

    @pytest.mark.asyncio
    async def test_stop_on_win(self, orchestrator: SpinOrchestrator, context: GameContext):
        context.reel_strips = uniform_strips(*PINECONE_STRIPS)
        orchestrator.autoplay.update_settings(stopOnWin=True)

        reason = await orchestrator.autoplay.run(max_spins=10)

        assert reason == "Win detected"
        assert orchestrator.autoplay.spins_played == 1

    @pytest.mark.asyncio
    async def test_stop_on_big_win_by_default(
        self, orchestrator: SpinOrchestrator, context: GameContext
    ):
        context.reel_strips = uniform_strips(*PINECONE_STRIPS)
        reason = await orchestrator.autoplay.run(max_spins=10)
        assert reason == "Big win (400x)"

    @pytest.mark.asyncio
    async def test_insufficient_credits_stops_before_spinning(
        self, orchestrator: SpinOrchestrator, context: GameContext, renderer: RecordingRenderer
    ):
        context.state.set_credits(5)

        reason = await orchestrator.autoplay.run()

        assert reason == "Insufficient credits"
        assert orchestrator.autoplay.spins_played == 0
        assert context.state.credits == 5
        assert "Autoplay stopped: Insufficient credits" in renderer.messages

    @pytest.mark.asyncio
    async def test_low_balance_stop(self, orchestrator: SpinOrchestrator, context: GameContext):
        context.state.set_credits(105)
        reason = await orchestrator.autoplay.run()
        assert reason == "Balance too low"
        assert context.state.credits == 95

    @pytest.mark.asyncio
    async def test_failed_spin_stops(
        self, orchestrator: SpinOrchestrator, context: GameContext, monkeypatch
    ):
        def broken_evaluate(grid, bet):
            raise RuntimeError("evaluator exploded")

        monkeypatch.setattr(context.evaluator, "evaluate", broken_evaluate)

        reason = await orchestrator.autoplay.run(max_spins=5)

        assert reason == "Spin failed"
        assert context.state.credits == 1000

    @pytest.mark.asyncio
    async def test_blocked_spin_stops_with_its_message(
        self, orchestrator: SpinOrchestrator, context: GameContext
    ):
        context.bonus.trigger(3)
        reason = await orchestrator.autoplay.run()
        assert reason is not None
        assert orchestrator.autoplay.spins_played == 0

    def test_stop_when_inactive_is_noop(self, orchestrator: SpinOrchestrator):
        orchestrator.autoplay.stop("manual")
        assert orchestrator.autoplay.stop_reason is None

    def test_update_settings_validates(self, orchestrator: SpinOrchestrator, context: GameContext):
        updated = orchestrator.autoplay.update_settings(balanceLowLimit=500)
        assert updated.balanceLowLimit == 500
        assert context.autoplay_settings.stopOnBigWin

    @pytest.mark.asyncio
    async def test_clearing_delay_timer_stops_autoplay(
        self, renderer: RecordingRenderer, sink: RecordingSink
    ):
        context = build_context(
            Settings(timing=TimingConfig(reel_spin_time=0, reel_stagger=0)),
            rng=ScriptedRNG(),
            anticipation_rng=ScriptedRNG(),
            renderer=renderer,
            timers=TimerRegistry(),
            telemetry=TelemetryService(sink),
            with_levels=False,
        )
        context.achievements = Achievements(context.state, definitions=[])
        context.reel_strips = uniform_strips(*LOSING_STRIPS)
        orchestrator = SpinOrchestrator(context)

        task = asyncio.create_task(orchestrator.autoplay.run())
        for _ in range(1000):
            if context.timers.active_count(Autoplay.TIMER_LABEL):
                break
            await asyncio.sleep(0)
        context.timers.clear_by_label(Autoplay.TIMER_LABEL)
        reason = await task

        assert reason == "Autoplay timer cleared"
        assert orchestrator.autoplay.spins_played == 1
        assert context.state.credits == 990
        assert not orchestrator.autoplay.is_active()


@pytest.fixture
def leveled_context(renderer: RecordingRenderer, sink: RecordingSink) -> GameContext:
    ctx = build_context(
        Settings(),
        rng=ScriptedRNG(),
        anticipation_rng=ScriptedRNG(),
        renderer=renderer,
        timers=InstantTimers(),
        telemetry=TelemetryService(sink),
    )
    ctx.reel_strips = uniform_strips(*LOSING_STRIPS)
    return ctx


class TestLockedFeatures:
    """Autoplay and turbo wait for their unlock level."""

    @pytest.mark.asyncio
    async def test_autoplay_locked_before_level_five(self, leveled_context: GameContext):
        orchestrator = SpinOrchestrator(leveled_context)
        with pytest.raises(GameError) as exc_info:
            await orchestrator.autoplay.run(max_spins=1)
        assert exc_info.value.code == ErrorCode.FEATURE_UNAVAILABLE
        assert not orchestrator.autoplay.is_active()

    @pytest.mark.asyncio
    async def test_autoplay_runs_once_unlocked(self, leveled_context: GameContext):
        leveled_context.levels.unlocked_features.add("autoplay")
        orchestrator = SpinOrchestrator(leveled_context)
        assert await orchestrator.autoplay.run(max_spins=1) == "Spin limit reached"

    def test_turbo_locked(self, leveled_context: GameContext):
        with pytest.raises(GameError) as exc_info:
            leveled_context.turbo.toggle()
        assert exc_info.value.code == ErrorCode.FEATURE_UNAVAILABLE


class TestTurbo:
    """Tests for turbo pacing."""

    def test_pacing(self):
        timing = TimingConfig()
        turbo = TurboMode(timing)

        assert turbo.reel_spin_time(2) == pytest.approx(2.4)
        assert turbo.autoplay_delay == 1.0

        assert turbo.toggle()
        assert turbo.reel_spin_time(2) == pytest.approx(1.0)
        assert turbo.autoplay_delay == 0.5

    def test_turning_off_never_needs_unlock(self):
        levels = LevelSystem(Settings().progression)
        levels.unlocked_features.add("turbo")
        turbo = TurboMode(TimingConfig(), levels)
        turbo.toggle()
        levels.unlocked_features.clear()
        assert not turbo.toggle()

    def test_save_data(self):
        turbo = TurboMode(TimingConfig())
        turbo.init({"isActive": True})
        assert turbo.get_save_data() == {"isActive": True}
        turbo.init(None)
        assert not turbo.is_active()


class TestBuyBonus:
    def test_cost_scales_with_bet(self):
        buy = BuyBonus(BonusConfig(), 100, ScriptedRNG())
        assert buy.cost(20) == 2000

    def test_pick_count_within_range(self):
        assert BuyBonus(BonusConfig(), 100, ScriptedRNG()).roll_picks() == 3
        assert BuyBonus(BonusConfig(), 100, ScriptedRNG(ints=[2])).roll_picks() == 5
        assert BuyBonus(BonusConfig(), 100, ScriptedRNG(ints=[9])).roll_picks() == 5
