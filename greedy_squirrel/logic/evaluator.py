"""Payline, scatter and bonus evaluation."""
import math
from numbers import Real
from typing import Sequence

from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.models import (
    BonusInfo,
    BonusLine,
    LineWin,
    Position,
    ScatterWin,
    WinInfo,
)
from greedy_squirrel.logic.symbols import SymbolTable


class PaylineEvaluator:
    """
    Pure grid evaluator.

    Rules:
    - The base symbol of a line is its first cell that is not wild, scatter or bonus.
      A line with no base symbol pays nothing, so wilds never pay on their own.
    - Matches count left to right from reel 0 while a cell is the base symbol or wild.
    - A line pays payout[count] x bet when count >= 3 and the table has that entry.
    - Scatters pay on their total count anywhere, looked up at min(count, 5).
    - Bonus triggers on any payline holding min_bonus_symbols bonus cells on
      bonus-eligible reels; the first such line sizes the pick game.
    """

    MIN_LINE_MATCH = 3
    MIN_SCATTERS = 3
    MAX_SCATTER_LOOKUP = 5

    def __init__(
        self,
        symbols: SymbolTable,
        paylines: Sequence[Sequence[int]],
        min_bonus_symbols: int = 3,
    ):
        self.symbols = symbols
        self.paylines = [list(line) for line in paylines]
        self.min_bonus_symbols = min_bonus_symbols

    def evaluate(self, grid: Sequence[Sequence[str]], bet: float) -> WinInfo:
        """Evaluate a reel-major grid at a bet."""
        self._validate_grid(grid)
        self._validate_bet(bet)

        info = WinInfo()
        positions: dict[Position, None] = {}

        for line_index in range(len(self.paylines)):
            line_win = self.evaluate_line(grid, line_index, bet)
            if line_win is None:
                continue
            info.line_wins.append(line_win)
            info.winning_lines.append(line_index)
            info.total_win += line_win.amount
            for pos in line_win.positions:
                positions.setdefault(pos, None)

        scatter_positions = self._scatter_positions(grid)
        info.scatter_count = len(scatter_positions)
        scatter_win = self.evaluate_scatter(grid, bet)
        if scatter_win is not None:
            info.has_scatter_win = True
            info.scatter_win = scatter_win
            info.total_win += scatter_win.amount
            for pos in scatter_win.positions:
                positions.setdefault(pos, None)

        info.bonus = self.check_bonus_trigger(grid)
        info.winning_positions = list(positions)
        return info

    def evaluate_line(
        self, grid: Sequence[Sequence[str]], line_index: int, bet: float
    ) -> LineWin | None:
        """Evaluate a single payline, returning None when it does not pay."""
        line = self.paylines[line_index]
        cells = [grid[reel][row] for reel, row in enumerate(line)]

        base_symbol = next((s for s in cells if not self.symbols.is_special(s)), None)
        if base_symbol is None:
            return None

        wild = self.symbols.wild
        match_count = 0
        for symbol in cells:
            if symbol == base_symbol or (wild is not None and symbol == wild):
                match_count += 1
            else:
                break

        if match_count < self.MIN_LINE_MATCH:
            return None
        payout = self.symbols.payout(base_symbol, match_count)
        if not payout:
            return None

        return LineWin(
            line_index=line_index,
            symbol=base_symbol,
            match_count=match_count,
            payout=payout,
            amount=payout * bet,
            positions=[(reel, line[reel]) for reel in range(match_count)],
        )

    def evaluate_scatter(self, grid: Sequence[Sequence[str]], bet: float) -> ScatterWin | None:
        positions = self._scatter_positions(grid)
        count = len(positions)
        if count < self.MIN_SCATTERS:
            return None
        payout = self.symbols.payout(self.symbols.scatter, min(count, self.MAX_SCATTER_LOOKUP))
        if not payout:
            return None
        return ScatterWin(count=count, payout=payout, amount=payout * bet, positions=positions)

    def check_bonus_trigger(self, grid: Sequence[Sequence[str]]) -> BonusInfo:
        """Scan every payline for bonus symbols on bonus-eligible reels."""
        bonus_id = self.symbols.bonus
        info = BonusInfo()
        if bonus_id is None:
            return info

        bonus_def = self.symbols.get(bonus_id)
        allowed = bonus_def.allowed_reels if bonus_def else None

        for line_index, line in enumerate(self.paylines):
            positions = [
                (reel, row)
                for reel, row in enumerate(line)
                if (allowed is None or reel in allowed) and grid[reel][row] == bonus_id
            ]
            if len(positions) >= self.min_bonus_symbols:
                info.lines.append(
                    BonusLine(line_index=line_index, count=len(positions), positions=positions)
                )

        if info.lines:
            info.triggered = True
            info.count = info.lines[0].count
        return info

    def _scatter_positions(self, grid: Sequence[Sequence[str]]) -> list[Position]:
        scatter = self.symbols.scatter
        if scatter is None:
            return []
        return [
            (reel, row)
            for reel, column in enumerate(grid)
            for row, symbol in enumerate(column)
            if symbol == scatter
        ]

    def _validate_grid(self, grid: Sequence[Sequence[str]]) -> None:
        if not isinstance(grid, (list, tuple)) or not grid:
            raise GameError(ErrorCode.INVALID_GRID, "Grid must be a non-empty 2D sequence")
        for reel_index, column in enumerate(grid):
            if not isinstance(column, (list, tuple)) or not column:
                raise GameError(
                    ErrorCode.INVALID_GRID, f"Reel {reel_index} must be a non-empty sequence"
                )
        for line_index, line in enumerate(self.paylines):
            if len(line) > len(grid):
                raise GameError(
                    ErrorCode.INVALID_GRID,
                    f"Grid has {len(grid)} reels but payline {line_index} needs {len(line)}",
                )
            for reel, row in enumerate(line):
                if row >= len(grid[reel]):
                    raise GameError(
                        ErrorCode.INVALID_GRID,
                        f"Reel {reel} has no row {row} for payline {line_index}",
                    )

    @staticmethod
    def _validate_bet(bet: float) -> None:
        if isinstance(bet, bool) or not isinstance(bet, Real):
            raise GameError(ErrorCode.INVALID_BET, f"Bet must be a number, got {type(bet).__name__}")
        if not math.isfinite(bet) or bet <= 0:
            raise GameError(ErrorCode.INVALID_BET, f"Bet must be positive: {bet}")
