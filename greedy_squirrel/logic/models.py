"""Spin evaluation and state snapshot models."""
from typing import Any

from pydantic import BaseModel, Field


# (reel, row)
Position = tuple[int, int]
Grid = list[list[str]]


class LineWin(BaseModel):
    """A paying payline."""

    line_index: int
    symbol: str
    match_count: int
    payout: int
    amount: float
    positions: list[Position] = Field(default_factory=list)


class ScatterWin(BaseModel):
    """Scatter pay, independent of paylines."""

    count: int
    payout: int
    amount: float
    positions: list[Position] = Field(default_factory=list)


class BonusLine(BaseModel):
    """A payline carrying enough bonus symbols to trigger the pick game."""

    line_index: int
    count: int
    positions: list[Position] = Field(default_factory=list)


class BonusInfo(BaseModel):
    """Bonus trigger result. The first qualifying line's count sizes the game."""

    triggered: bool = False
    count: int = 0
    lines: list[BonusLine] = Field(default_factory=list)


class WinInfo(BaseModel):
    """Result of evaluating one grid at one bet."""

    total_win: float = 0
    winning_positions: list[Position] = Field(default_factory=list)
    winning_lines: list[int] = Field(default_factory=list)
    line_wins: list[LineWin] = Field(default_factory=list)
    has_scatter_win: bool = False
    scatter_count: int = 0
    scatter_win: ScatterWin | None = None
    bonus: BonusInfo = Field(default_factory=BonusInfo)

    @property
    def has_win(self) -> bool:
        return self.total_win > 0


class AnticipationDecision(BaseModel):
    """Presentation-only pacing decision for the remaining reels."""

    kind: str  # "scatter" | "bonus" | "bigwin"
    intensity: str  # "medium" | "high"
    reel_index: int
    delay: float = 0.0


class CascadeStep(BaseModel):
    """One tumble iteration that produced a win."""

    iteration: int
    multiplier: int
    base_win: float
    amount: float
    positions: list[Position] = Field(default_factory=list)


class CascadeResult(BaseModel):
    """Outcome of a full cascade resolution."""

    total_win: float = 0
    iterations: int = 0
    capped: bool = False
    steps: list[CascadeStep] = Field(default_factory=list)
    final_grid: Grid = Field(default_factory=list)


class SpinCheckpoint(BaseModel):
    """Pre-spin snapshot used to roll back a failed spin."""

    credits: int
    lastWin: int
    isSpinning: bool
    currentBet: int | float
    currentBetIndex: int
    # Free-spins session as it was before the spin; restored by the orchestrator
    freeSpins: dict[str, Any] | None = None

    def to_updates(self) -> dict[str, Any]:
        return {
            "credits": self.credits,
            "last_win": self.lastWin,
            "is_spinning": self.isSpinning,
            "current_bet": self.currentBet,
            "current_bet_index": self.currentBetIndex,
        }
