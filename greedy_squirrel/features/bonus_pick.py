"""Bonus pick game state machine: inactive -> active -> inactive."""
import logging
import math
from typing import Any, Literal

from pydantic import BaseModel, Field

from greedy_squirrel.config import BonusConfig
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.rng import ProductionRNG, RNGBase


logger = logging.getLogger(__name__)


class BonusPrize(BaseModel):
    kind: Literal["credits", "multiplier", "extra_pick"]
    value: int


class PickResult(BaseModel):
    """Outcome of a single pick."""

    index: int
    prize: BonusPrize
    total_win: float
    picks_remaining: int
    finished: bool


class BonusPickState(BaseModel):
    active: bool = False
    total_picks: int = 0
    picks_remaining: int = 0
    total_win: float = 0
    prizes: list[BonusPrize] = Field(default_factory=list)
    picked: list[int] = Field(default_factory=list)


class BonusPickController:
    """
    Hidden-prize pick game.

    The pool holds one weighted prize per awarded pick plus low-value
    credit fillers, shuffled. Credits add to the running total, a
    multiplier scales it, and an extra pick grants one more pick.
    """

    name = "bonus"

    def __init__(self, config: BonusConfig, rng: RNGBase | None = None):
        self.config = config
        self.rng = rng or ProductionRNG()
        self.state = BonusPickState()

    def is_active(self) -> bool:
        return self.state.active

    @property
    def picks_remaining(self) -> int:
        return self.state.picks_remaining

    @property
    def total_win(self) -> float:
        return self.state.total_win

    @property
    def prizes(self) -> list[BonusPrize]:
        return list(self.state.prizes)

    def should_trigger(self, bonus_count: int) -> bool:
        return bonus_count >= self.config.min_bonus_symbols

    def trigger(self, bonus_count: int) -> int:
        """Start the game. Returns the number of picks granted."""
        if self.state.active:
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Bonus game is already active")
        if isinstance(bonus_count, bool) or not isinstance(bonus_count, int) or bonus_count < 1:
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Invalid bonus count: {bonus_count}")

        total_picks = min(bonus_count, self.config.max_picks)
        self.state = BonusPickState(
            active=True,
            total_picks=total_picks,
            picks_remaining=total_picks,
            prizes=self.generate_prizes(total_picks),
        )
        logger.info("Bonus game started with %d picks", total_picks)
        return total_picks

    def _draw_range(self, low: int, high: int) -> int:
        return math.floor(self.rng.random() * (high - low) + low)

    def generate_prizes(self, guaranteed: int) -> list[BonusPrize]:
        cfg = self.config
        pool: list[BonusPrize] = []
        for _ in range(min(guaranteed, cfg.pool_size)):
            roll = self.rng.random()
            if roll < cfg.credits_chance:
                pool.append(
                    BonusPrize(kind="credits", value=self._draw_range(cfg.credits_min, cfg.credits_max))
                )
            elif roll < cfg.credits_chance + cfg.multiplier_chance:
                pool.append(
                    BonusPrize(
                        kind="multiplier",
                        value=self._draw_range(cfg.multiplier_min, cfg.multiplier_max),
                    )
                )
            else:
                pool.append(BonusPrize(kind="extra_pick", value=cfg.extra_pick_value))

        while len(pool) < cfg.pool_size:
            pool.append(
                BonusPrize(kind="credits", value=self._draw_range(cfg.filler_min, cfg.filler_max))
            )

        # Fisher-Yates
        for i in range(len(pool) - 1, 0, -1):
            j = self.rng.randint(0, i)
            pool[i], pool[j] = pool[j], pool[i]
        return pool

    def pick(self, index: int) -> PickResult | None:
        """
        Reveal one prize.

        Returns None for a repeated index (no-op). Raises FEATURE_INACTIVE
        when no game is running and INVALID_AMOUNT for an index outside the pool.
        """
        if not self.state.active or self.state.picks_remaining <= 0:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "No bonus game is active")
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self.state.prizes):
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Invalid pick index: {index}")
        if index in self.state.picked:
            return None

        prize = self.state.prizes[index]
        self.state.picked.append(index)

        if prize.kind == "credits":
            self.state.total_win += prize.value
        elif prize.kind == "multiplier":
            self.state.total_win *= prize.value
        else:
            self.state.total_picks += prize.value
            self.state.picks_remaining += prize.value

        self.state.picks_remaining -= 1
        return PickResult(
            index=index,
            prize=prize,
            total_win=self.state.total_win,
            picks_remaining=self.state.picks_remaining,
            finished=self.state.picks_remaining <= 0,
        )

    def unpicked_indices(self) -> list[int]:
        return [i for i in range(len(self.state.prizes)) if i not in self.state.picked]

    def end(self) -> float:
        """Finalize and return the game's total."""
        total = self.state.total_win
        logger.info("Bonus game ended: %d picks, total win %s", self.state.total_picks, total)
        self.state = BonusPickState()
        return total

    def get_save_data(self) -> dict[str, Any] | None:
        if not self.state.active:
            return None
        return {
            "active": True,
            "totalPicks": self.state.total_picks,
            "picksRemaining": self.state.picks_remaining,
            "totalWin": self.state.total_win,
            "prizes": [p.model_dump() for p in self.state.prizes],
            "picked": list(self.state.picked),
        }

    def init(self, data: dict[str, Any] | None) -> None:
        if not data or not data.get("active") or not data.get("prizes"):
            self.state = BonusPickState()
            return
        self.state = BonusPickState(
            active=True,
            total_picks=int(data.get("totalPicks", 0)),
            picks_remaining=int(data.get("picksRemaining", 0)),
            total_win=float(data.get("totalWin", 0)),
            prizes=[BonusPrize.model_validate(p) for p in data["prizes"]],
            picked=[int(i) for i in data.get("picked", [])],
        )
