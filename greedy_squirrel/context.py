"""Explicit wiring of every collaborator the spin pipeline needs."""
import time
from dataclasses import dataclass, field
from typing import Callable

from greedy_squirrel.capabilities import (
    NullRenderer,
    NullSound,
    Renderer,
    SoundPlayer,
    TimerRegistry,
)
from greedy_squirrel.config import Settings, settings
from greedy_squirrel.errors import ErrorHandler
from greedy_squirrel.features.autoplay import AutoplaySettings
from greedy_squirrel.features.bonus_pick import BonusPickController
from greedy_squirrel.features.buy_bonus import BuyBonus
from greedy_squirrel.features.free_spins import FreeSpinsController
from greedy_squirrel.features.gamble import GambleController
from greedy_squirrel.features.turbo import TurboMode
from greedy_squirrel.logic.anticipation import AnticipationAdvisor
from greedy_squirrel.logic.cascade import CascadeResolver
from greedy_squirrel.logic.evaluator import PaylineEvaluator
from greedy_squirrel.logic.rng import ProductionRNG, RNGBase, WeightedRNG
from greedy_squirrel.logic.symbols import SymbolTable
from greedy_squirrel.progression.achievements import Achievements
from greedy_squirrel.progression.challenges import DailyChallenges
from greedy_squirrel.progression.history import SpinHistory
from greedy_squirrel.progression.levels import LevelSystem
from greedy_squirrel.progression.statistics import Statistics
from greedy_squirrel.state import GameStateStore
from greedy_squirrel.telemetry import TelemetryService, telemetry_service


@dataclass
class GameContext:
    config: Settings
    symbols: SymbolTable
    rng: RNGBase
    state: GameStateStore
    weighted_rng: WeightedRNG
    evaluator: PaylineEvaluator
    anticipation: AnticipationAdvisor
    cascade: CascadeResolver
    free_spins: FreeSpinsController
    bonus: BonusPickController
    gamble: GambleController
    turbo: TurboMode
    buy_bonus: BuyBonus
    statistics: Statistics
    levels: LevelSystem | None
    achievements: Achievements
    challenges: DailyChallenges
    history: SpinHistory
    renderer: Renderer
    sound: SoundPlayer
    timers: TimerRegistry
    errors: ErrorHandler
    telemetry: TelemetryService
    autoplay_settings: AutoplaySettings = field(default_factory=AutoplaySettings)
    auto_collect_enabled: bool = False
    reel_strips: list[list[str]] = field(default_factory=list)

    def regenerate_strips(self) -> None:
        self.reel_strips = self.weighted_rng.build_strips(self.config.reels.symbols_per_reel)


def build_context(
    config: Settings | None = None,
    *,
    rng: RNGBase | None = None,
    anticipation_rng: RNGBase | None = None,
    symbols: SymbolTable | None = None,
    renderer: Renderer | None = None,
    sound: SoundPlayer | None = None,
    timers: TimerRegistry | None = None,
    telemetry: TelemetryService | None = None,
    with_levels: bool = True,
    clock: Callable[[], float] = time.time,
) -> GameContext:
    """
    Build a fully wired context. Missing capabilities become no-ops.

    The anticipation heuristic draws from its own RNG so pacing never
    shifts the game-math draws of a seeded run.
    """
    config = config or settings
    rng = rng or ProductionRNG()
    symbols = symbols or SymbolTable()
    renderer = renderer or NullRenderer()
    timers = timers or TimerRegistry()
    telemetry = telemetry or telemetry_service

    state = GameStateStore(
        bet_options=config.bet_options,
        initial_credits=config.initial_credits,
        reel_count=config.reels.reel_count,
        max_bet_increment_percent=config.max_bet_increment_percent,
    )
    weighted_rng = WeightedRNG(symbols, rng, reel_count=config.reels.reel_count)
    evaluator = PaylineEvaluator(symbols, config.paylines, config.bonus.min_bonus_symbols)
    cascade = CascadeResolver(
        weighted_rng, evaluator, config.cascade, renderer=renderer, timers=timers, telemetry=telemetry
    )
    levels = LevelSystem(config.progression, state) if with_levels else None
    if levels is not None:
        levels.unlock_hooks["cascade"] = lambda: setattr(cascade, "enabled", True)

    context = GameContext(
        config=config,
        symbols=symbols,
        rng=rng,
        state=state,
        weighted_rng=weighted_rng,
        evaluator=evaluator,
        anticipation=AnticipationAdvisor(
            symbols,
            config.anticipation,
            anticipation_rng or ProductionRNG(),
            row_count=config.reels.row_count,
        ),
        cascade=cascade,
        free_spins=FreeSpinsController(config.free_spins, rng),
        bonus=BonusPickController(config.bonus, rng),
        gamble=GambleController(config.gamble, rng),
        turbo=TurboMode(config.timing, levels),
        buy_bonus=BuyBonus(config.bonus, config.buy_bonus_cost_multiplier, rng),
        statistics=Statistics(config.bet_options, clock=clock),
        levels=levels,
        achievements=Achievements(state, clock=clock),
        challenges=DailyChallenges(
            state, rng, per_day=config.progression.challenges_per_day, clock=clock
        ),
        history=SpinHistory(config.spin_history_max_entries, clock=clock),
        renderer=renderer,
        sound=sound or NullSound(),
        timers=timers,
        errors=ErrorHandler(renderer),
        telemetry=telemetry,
    )
    context.regenerate_strips()
    return context
