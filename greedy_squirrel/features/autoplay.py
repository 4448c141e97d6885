"""Autoplay: repeated spins until a stop condition fires."""
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from greedy_squirrel.capabilities import TimerCancelled
from greedy_squirrel.errors import ErrorCode, GameError

if TYPE_CHECKING:
    from greedy_squirrel.orchestrator import SpinOrchestrator, SpinOutcome


logger = logging.getLogger(__name__)


class AutoplaySettings(BaseModel):
    stopOnWin: bool = False
    stopOnBigWin: bool = True
    bigWinMultiplier: int = 50
    stopOnFeature: bool = False
    stopOnBalance: bool = False
    balanceIncrease: int = 1000
    stopOnBalanceLow: bool = True
    balanceLowLimit: int = 100


class Autoplay:
    """Drives the orchestrator with the turbo-aware delay between spins."""

    name = "autoplay"
    TIMER_LABEL = "autoplay"

    def __init__(self, orchestrator: "SpinOrchestrator"):
        self.orchestrator = orchestrator
        self.active = False
        self.starting_balance = 0
        self.stop_reason: str | None = None
        self.spins_played = 0

    @property
    def context(self):
        return self.orchestrator.context

    @property
    def settings(self) -> AutoplaySettings:
        return self.context.autoplay_settings

    def is_active(self) -> bool:
        return self.active

    def update_settings(self, **changes: Any) -> AutoplaySettings:
        merged = {**self.settings.model_dump(), **changes}
        self.context.autoplay_settings = AutoplaySettings.model_validate(merged)
        return self.context.autoplay_settings

    def should_stop(self, outcome: "SpinOutcome | None") -> str | None:
        """Reason to stop after a spin, or None to keep going."""
        state = self.context.state
        cfg = self.settings
        bet = state.current_bet

        if outcome is not None and outcome.error is not None:
            return "Spin failed"
        if cfg.stopOnFeature and outcome is not None and (
            "freeSpins" in outcome.features or "bonus" in outcome.features
        ):
            return "Feature triggered"
        if cfg.stopOnWin and state.last_win > 0:
            return "Win detected"
        if cfg.stopOnBigWin and bet > 0 and state.last_win >= bet * cfg.bigWinMultiplier:
            return f"Big win ({int(state.last_win // bet)}x)"
        if cfg.stopOnBalance:
            change = state.credits - self.starting_balance
            if change >= cfg.balanceIncrease:
                return f"Balance increased by {change}"
        if cfg.stopOnBalanceLow and state.credits < cfg.balanceLowLimit:
            return "Balance too low"
        return None

    async def run(self, max_spins: int | None = None) -> str | None:
        """Spin until a stop condition, `stop()`, or `max_spins`. Returns the stop reason."""
        levels = self.context.levels
        if levels is not None and not levels.is_feature_unlocked("autoplay"):
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Autoplay unlocks at level 5")
        if self.active:
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Autoplay is already running")

        self.active = True
        self.stop_reason = None
        self.spins_played = 0
        self.starting_balance = self.context.state.credits
        logger.info("Autoplay started (limit=%s)", max_spins)

        try:
            while self.active:
                state = self.context.state
                if state.credits < state.current_bet:
                    self.stop("Insufficient credits")
                    break

                try:
                    outcome = await self.orchestrator.spin()
                except GameError as e:
                    self.stop(e.message)
                    break
                self.spins_played += 1

                reason = self.should_stop(outcome)
                if reason is not None:
                    self.stop(reason)
                    break
                if max_spins is not None and self.spins_played >= max_spins:
                    self.stop("Spin limit reached")
                    break

                try:
                    await self.context.timers.sleep(
                        self.context.turbo.autoplay_delay, self.TIMER_LABEL
                    )
                except TimerCancelled:
                    self.stop("Autoplay timer cleared")
                    break
        finally:
            self.active = False

        if self.stop_reason:
            await self.context.renderer.show_message(f"Autoplay stopped: {self.stop_reason}")
        return self.stop_reason

    def stop(self, reason: str = "") -> None:
        if not self.active:
            return
        self.active = False
        self.stop_reason = reason or self.stop_reason
        logger.info("Autoplay stopped: %s", reason or "by player")
