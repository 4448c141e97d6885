"""Cascade (tumble) resolution."""
import logging
from typing import Sequence

from greedy_squirrel.capabilities import NullRenderer, Renderer, TimerRegistry
from greedy_squirrel.config import CascadeConfig
from greedy_squirrel.config_hash import get_config_hash
from greedy_squirrel.logic.evaluator import PaylineEvaluator
from greedy_squirrel.logic.models import CascadeResult, CascadeStep, Grid, Position
from greedy_squirrel.logic.rng import WeightedRNG
from greedy_squirrel.telemetry import CascadeCappedEvent, TelemetryService, telemetry_service


logger = logging.getLogger(__name__)


class CascadeResolver:
    """
    Removes winning symbols, drops the rest, refills and re-evaluates.

    The multiplier for iteration n (1-based) is multipliers[min(n, len-1)].
    A hard iteration cap ends the loop and is reported, never raised.
    Iterations are strictly sequential: the next refill waits for the
    previous step's presentation delay.
    """

    TIMER_LABEL = "cascade"

    def __init__(
        self,
        weighted_rng: WeightedRNG,
        evaluator: PaylineEvaluator,
        config: CascadeConfig,
        renderer: Renderer | None = None,
        timers: TimerRegistry | None = None,
        telemetry: TelemetryService | None = None,
    ):
        self.weighted_rng = weighted_rng
        self.evaluator = evaluator
        self.config = config
        self.renderer = renderer or NullRenderer()
        self.timers = timers
        self.telemetry = telemetry or telemetry_service
        self.enabled = config.enabled

    def multiplier_for(self, iteration: int) -> int:
        table = self.config.multipliers
        return table[min(iteration, len(table) - 1)]

    def collapse(self, grid: Sequence[Sequence[str]], positions: Sequence[Position]) -> Grid:
        """Remove positions, drop survivors to the bottom and refill the top of each reel."""
        removed = set(positions)
        new_grid: Grid = []
        for reel_index, column in enumerate(grid):
            if not any(pos[0] == reel_index for pos in removed):
                new_grid.append(list(column))
                continue
            survivors = [
                symbol for row, symbol in enumerate(column) if (reel_index, row) not in removed
            ]
            refill = [
                self.weighted_rng.weighted_symbol(reel_index)
                for _ in range(len(column) - len(survivors))
            ]
            new_grid.append(refill + survivors)
        return new_grid

    async def resolve(
        self, grid: Sequence[Sequence[str]], winning_positions: Sequence[Position], bet: float
    ) -> CascadeResult:
        """Run cascades until a refill stops paying or the iteration cap is hit."""
        current: Grid = [list(column) for column in grid]
        positions = list(dict.fromkeys(winning_positions))
        result = CascadeResult(final_grid=current)

        while positions:
            if result.iterations >= self.config.max_iterations:
                result.capped = True
                logger.warning(
                    "Cascade stopped at iteration cap %d (total win %s)",
                    self.config.max_iterations,
                    result.total_win,
                )
                self.telemetry.emit_cascade_capped(
                    CascadeCappedEvent(
                        iterations=result.iterations,
                        total_win=result.total_win,
                        config_hash=get_config_hash(),
                    )
                )
                break

            current = self.collapse(current, positions)
            result.iterations += 1
            multiplier = self.multiplier_for(result.iterations)
            win = self.evaluator.evaluate(current, bet)

            await self.renderer.cascade_step(current, win.winning_positions, multiplier)
            if self.timers is not None:
                await self.timers.sleep(self.config.step_delay, self.TIMER_LABEL)

            if win.total_win <= 0:
                break

            amount = win.total_win * multiplier
            result.total_win += amount
            result.steps.append(
                CascadeStep(
                    iteration=result.iterations,
                    multiplier=multiplier,
                    base_win=win.total_win,
                    amount=amount,
                    positions=win.winning_positions,
                )
            )
            positions = win.winning_positions

        result.final_grid = current
        logger.debug(
            "Cascade finished after %d iterations, extra win %s", result.iterations, result.total_win
        )
        return result

    async def execute_cascade(
        self, grid: Sequence[Sequence[str]], winning_positions: Sequence[Position], bet: float
    ) -> float:
        """Total additional win from cascading the given winning positions."""
        result = await self.resolve(grid, winning_positions, bet)
        return result.total_win

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        return self.enabled

    def get_save_data(self) -> dict:
        return {"enabled": self.enabled}

    def init(self, data: dict | None) -> None:
        if data and "enabled" in data:
            self.enabled = bool(data["enabled"])
