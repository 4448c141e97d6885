"""Gamble (double-up) state machine: inactive -> offered -> active -> inactive."""
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from greedy_squirrel.config import GambleConfig
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.rng import ProductionRNG, RNGBase


logger = logging.getLogger(__name__)

SUITS = ("hearts", "diamonds", "spades", "clubs")
RED_SUITS = frozenset({"hearts", "diamonds"})


def suit_color(suit: str) -> str:
    return "red" if suit in RED_SUITS else "black"


class GamblePhase(str, Enum):
    INACTIVE = "inactive"
    OFFERED = "offered"
    ACTIVE = "active"


class GambleRound(BaseModel):
    suit: str
    color: str
    guess: str
    won: bool
    amount_after: float


class GambleState(BaseModel):
    phase: GamblePhase = GamblePhase.INACTIVE
    amount: float = 0
    original_amount: float = 0
    attempts_remaining: int = 0
    history: list[GambleRound] = Field(default_factory=list)


class GambleController:
    """
    Red/black double-up on a completed win.

    A correct guess doubles the amount and uses one attempt; play goes on
    while attempts remain and the amount is within the ceiling. A wrong
    guess zeroes the amount and ends the round.
    """

    name = "gamble"

    def __init__(self, config: GambleConfig, rng: RNGBase | None = None):
        self.config = config
        self.rng = rng or ProductionRNG()
        self.state = GambleState()
        self.last_result: float = 0

    @property
    def phase(self) -> GamblePhase:
        return self.state.phase

    @property
    def amount(self) -> float:
        return self.state.amount

    def is_active(self) -> bool:
        return self.state.phase != GamblePhase.INACTIVE

    def can_gamble(
        self,
        win_amount: float,
        *,
        in_free_spins: bool = False,
        in_bonus: bool = False,
        auto_collect: bool = False,
    ) -> bool:
        if auto_collect or in_free_spins or in_bonus:
            return False
        if isinstance(win_amount, bool) or not isinstance(win_amount, (int, float)):
            return False
        return 0 < win_amount <= self.config.max_win_amount

    def offer(self, win_amount: float) -> None:
        if self.state.phase != GamblePhase.INACTIVE:
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "A gamble is already in progress")
        if not self.can_gamble(win_amount):
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Win {win_amount} cannot be gambled")
        self.state = GambleState(
            phase=GamblePhase.OFFERED,
            amount=win_amount,
            original_amount=win_amount,
            attempts_remaining=self.config.max_attempts,
        )

    def accept(self) -> None:
        if self.state.phase != GamblePhase.OFFERED:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "No gamble offer to accept")
        self.state.phase = GamblePhase.ACTIVE

    def decline(self) -> float:
        """Turn the offer down and keep the win."""
        if self.state.phase != GamblePhase.OFFERED:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "No gamble offer to decline")
        return self._finish()

    def guess(self, color: str) -> GambleRound:
        if self.state.phase != GamblePhase.ACTIVE:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "Gamble is not active")
        color = color.lower() if isinstance(color, str) else color
        if color not in ("red", "black"):
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Guess must be red or black, got {color!r}")

        suit = SUITS[self.rng.randint(0, len(SUITS) - 1)]
        card_color = suit_color(suit)
        won = color == card_color

        if won:
            self.state.amount *= 2
            self.state.attempts_remaining -= 1
        else:
            self.state.amount = 0

        round_ = GambleRound(
            suit=suit, color=card_color, guess=color, won=won, amount_after=self.state.amount
        )
        self.state.history.append(round_)

        if not won:
            logger.info("Gamble lost on %s", suit)
            self._finish()
        elif not self.can_continue():
            logger.info("Gamble limit reached at %s", self.state.amount)
            self._finish()
        return round_

    def can_continue(self) -> bool:
        return (
            self.state.phase == GamblePhase.ACTIVE
            and self.state.attempts_remaining > 0
            and self.state.amount <= self.config.max_win_amount
        )

    def collect(self) -> float:
        """Take the current amount and end the feature."""
        if self.state.phase == GamblePhase.INACTIVE:
            raise GameError(ErrorCode.FEATURE_INACTIVE, "Gamble is not active")
        return self._finish()

    def _finish(self) -> float:
        final = self.state.amount
        history = self.state.history
        self.state = GambleState(history=history)
        self.last_result = final
        return final

    def get_save_data(self) -> dict[str, Any] | None:
        if self.state.phase == GamblePhase.INACTIVE:
            return None
        return {
            "phase": self.state.phase.value,
            "amount": self.state.amount,
            "originalAmount": self.state.original_amount,
            "attemptsRemaining": self.state.attempts_remaining,
        }

    def init(self, data: dict[str, Any] | None) -> float:
        """
        Restore from a save. A gamble cannot resume after a reload, so a
        pending amount is returned to be credited back.
        """
        self.state = GambleState()
        if not data:
            return 0
        return max(0.0, float(data.get("amount", 0) or 0))
