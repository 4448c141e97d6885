"""Free spins feature state machine: inactive -> active -> inactive."""
import logging
from typing import Any

from pydantic import BaseModel

from greedy_squirrel.config import FreeSpinsConfig
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.rng import ProductionRNG, RNGBase


logger = logging.getLogger(__name__)


class FreeSpinsState(BaseModel):
    active: bool = False
    remaining_spins: int = 0
    total_spins: int = 0
    total_win: float = 0
    multiplier: int = 1
    retrigger_count: int = 0


class FreeSpinsController:
    """
    Awards spins from the scatter count table and scales wins by a
    session multiplier sampled once per trigger.
    """

    name = "free_spins"

    def __init__(self, config: FreeSpinsConfig, rng: RNGBase | None = None):
        self.config = config
        self.rng = rng or ProductionRNG()
        self.state = FreeSpinsState()

    def is_active(self) -> bool:
        return self.state.active

    @property
    def remaining_spins(self) -> int:
        return self.state.remaining_spins

    @property
    def multiplier(self) -> int:
        return self.state.multiplier

    @property
    def spins_played(self) -> int:
        return self.state.total_spins - self.state.remaining_spins

    def spins_for(self, scatter_count: int) -> int:
        """Spins awarded for a scatter count, looked up at min(count, largest table key)."""
        table = self.config.scatter_counts
        return table.get(min(scatter_count, max(table)), 0)

    def should_trigger(self, scatter_count: int) -> bool:
        return scatter_count >= self.config.min_scatters and self.spins_for(scatter_count) > 0

    def trigger(self, scatter_count: int) -> int:
        """Activate the feature. Returns the number of spins awarded."""
        if self.state.active:
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Free spins are already active")
        if not self.should_trigger(scatter_count):
            raise GameError(
                ErrorCode.INVALID_AMOUNT,
                f"{scatter_count} scatters do not award free spins",
            )

        spins = self.spins_for(scatter_count)
        multipliers = self.config.multipliers
        self.state = FreeSpinsState(
            active=True,
            remaining_spins=spins,
            total_spins=spins,
            multiplier=multipliers[self.rng.randint(0, len(multipliers) - 1)],
        )
        logger.info(
            "Free spins triggered: %d spins at %dx (%d scatters)",
            spins,
            self.state.multiplier,
            scatter_count,
        )
        return spins

    def retrigger(self, scatter_count: int) -> int:
        """Add spins while active. The session multiplier is kept."""
        if not self.state.active or not self.config.can_retrigger:
            return 0
        if scatter_count < self.config.min_scatters:
            return 0
        spins = self.spins_for(scatter_count)
        self.state.remaining_spins += spins
        self.state.total_spins += spins
        self.state.retrigger_count += 1
        logger.info("Free spins retriggered: +%d (remaining %d)", spins, self.state.remaining_spins)
        return spins

    def execute_spin(self) -> bool:
        """Consume one free spin. Returns whether more remain."""
        if not self.state.active:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "No free spins session is active")
        self.state.remaining_spins = max(0, self.state.remaining_spins - 1)
        return self.state.remaining_spins > 0

    def add_win(self, amount: float) -> None:
        if self.state.active and amount > 0:
            self.state.total_win += amount

    def apply_multiplier(self, win: float) -> float:
        if not self.state.active:
            return win
        return win * self.state.multiplier

    def end(self) -> float:
        """Deactivate and return the session's accumulated win."""
        total = self.state.total_win
        logger.info(
            "Free spins ended: %d spins, %d retriggers, total win %s",
            self.state.total_spins,
            self.state.retrigger_count,
            total,
        )
        self.state = FreeSpinsState()
        return total

    def get_save_data(self) -> dict[str, Any] | None:
        if not self.state.active:
            return None
        return {
            "active": True,
            "remainingSpins": self.state.remaining_spins,
            "totalSpins": self.state.total_spins,
            "totalWin": self.state.total_win,
            "multiplier": self.state.multiplier,
            "retriggerCount": self.state.retrigger_count,
        }

    def init(self, data: dict[str, Any] | None) -> None:
        if not data or not data.get("active") or int(data.get("remainingSpins", 0)) <= 0:
            self.state = FreeSpinsState()
            return
        self.state = FreeSpinsState(
            active=True,
            remaining_spins=int(data["remainingSpins"]),
            total_spins=int(data.get("totalSpins", data["remainingSpins"])),
            total_win=float(data.get("totalWin", 0)),
            multiplier=int(data.get("multiplier", 1)),
            retrigger_count=int(data.get("retriggerCount", 0)),
        )
