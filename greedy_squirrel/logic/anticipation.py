"""Near-miss anticipation heuristic. Affects pacing only, never the outcome."""
import logging
from typing import Sequence

from greedy_squirrel.config import AnticipationConfig
from greedy_squirrel.logic.models import AnticipationDecision
from greedy_squirrel.logic.rng import ProductionRNG, RNGBase
from greedy_squirrel.logic.symbols import SymbolTable


logger = logging.getLogger(__name__)


class AnticipationAdvisor:
    """
    Decides whether to slow the remaining reels for dramatic effect.

    Works on the fully predetermined grid: the reels that have "stopped"
    are a prefix of it, and the whole grid is the peek at the final result.
    A random gate keeps most eligible spins calm, and a small fluke chance
    teases a near miss that will not pay.
    """

    def __init__(
        self,
        symbols: SymbolTable,
        config: AnticipationConfig,
        rng: RNGBase | None = None,
        row_count: int = 3,
    ):
        self.symbols = symbols
        self.config = config
        self.rng = rng or ProductionRNG()
        self.row_count = row_count

    @property
    def _payline_row(self) -> int:
        return self.row_count // 2

    def check(
        self,
        stopped_reels: int,
        grid: Sequence[Sequence[str]],
        final_grid: Sequence[Sequence[str]] | None = None,
    ) -> AnticipationDecision | None:
        """Evaluate anticipation after `stopped_reels` reels have landed."""
        if not self.config.enabled or stopped_reels < 2:
            return None
        if self.rng.random() > self.config.trigger_chance:
            return None

        is_fluke = self.rng.random() < self.config.fluke_chance
        reel_count = len(grid)

        scatter_count = self.count_scatters(grid, stopped_reels)
        if scatter_count >= 2 and stopped_reels < reel_count:
            final_scatters = self.count_scatters(final_grid, len(final_grid)) if final_grid else 0
            if final_scatters >= 3 or (is_fluke and scatter_count == 2):
                return self._decision("scatter", scatter_count, stopped_reels)

        bonus_count = self.count_bonus_on_payline(grid, stopped_reels)
        if bonus_count >= 2 and stopped_reels < reel_count:
            final_bonus = (
                self.count_bonus_on_payline(final_grid, len(final_grid)) if final_grid else 0
            )
            if final_bonus >= 3 or (is_fluke and bonus_count == 2):
                return self._decision("bonus", bonus_count, stopped_reels)

        if self.has_big_win_potential(grid):
            will_pay_big = self.will_have_big_win(final_grid) if final_grid else False
            if will_pay_big or is_fluke:
                return AnticipationDecision(
                    kind="bigwin",
                    intensity="medium",
                    reel_index=stopped_reels,
                    delay=self.dramatic_delay("medium"),
                )

        return None

    def advise(self, grid: Sequence[Sequence[str]]) -> AnticipationDecision | None:
        """Run the check once per candidate reel on a predetermined grid."""
        for stopped in range(2, len(grid) - 1):
            decision = self.check(stopped, grid, grid)
            if decision is not None:
                logger.debug(
                    "Anticipation %s/%s from reel %d", decision.kind, decision.intensity, stopped
                )
                return decision
        return None

    def dramatic_delay(self, intensity: str | None) -> float:
        """Extra delay in seconds for the reels after the anticipation point."""
        if not self.config.enabled:
            return 0.0
        if intensity == "high":
            return self.config.dramatic_delay_high
        if intensity == "medium":
            return self.config.dramatic_delay_medium
        return 0.0

    def count_scatters(self, grid: Sequence[Sequence[str]], stopped_reels: int) -> int:
        scatter = self.symbols.scatter
        return sum(
            1
            for column in grid[:stopped_reels]
            for symbol in column
            if symbol == scatter
        )

    def count_bonus_on_payline(self, grid: Sequence[Sequence[str]], stopped_reels: int) -> int:
        """Bonus symbols on the middle row of bonus-eligible reels."""
        bonus = self.symbols.bonus
        bonus_def = self.symbols.get(bonus) if bonus else None
        if bonus_def is None:
            return 0
        allowed = bonus_def.allowed_reels
        row = self._payline_row
        count = 0
        for reel, column in enumerate(grid[:stopped_reels]):
            if (allowed is None or reel in allowed) and len(column) > row and column[row] == bonus:
                count += 1
        return count

    def has_big_win_potential(self, grid: Sequence[Sequence[str]]) -> bool:
        """First two middle-row symbols match on a premium symbol, or either is wild."""
        if len(grid) < 2:
            return False
        row = self._payline_row
        first, second = grid[0][row], grid[1][row]
        wild = self.symbols.wild
        if first == second and first in self.symbols.high_value_ids():
            return True
        return wild is not None and wild in (first, second)

    def will_have_big_win(self, grid: Sequence[Sequence[str]]) -> bool:
        """Middle row holds 4+ consecutive matches involving a premium symbol."""
        if len(grid) < 4:
            return False
        row = self._payline_row
        line = [column[row] for column in grid]
        wild = self.symbols.wild
        current = line[0]
        matches = 1
        for symbol in line[1:]:
            if symbol == current or symbol == wild or current == wild:
                matches += 1
            else:
                break
        high_value = self.symbols.high_value_ids()
        return matches >= 4 and (current in high_value or line[0] in high_value)

    def _decision(self, kind: str, count: int, stopped_reels: int) -> AnticipationDecision:
        intensity = "medium" if count == 2 else "high"
        return AnticipationDecision(
            kind=kind,
            intensity=intensity,
            reel_index=stopped_reels,
            delay=self.dramatic_delay(intensity),
        )
