"""Buy-in to the bonus pick game."""
from greedy_squirrel.config import BonusConfig
from greedy_squirrel.logic.rng import RNGBase


class BuyBonus:
    """Prices the buy-in and sizes the purchased pick game."""

    def __init__(self, config: BonusConfig, cost_multiplier: int, rng: RNGBase):
        self.config = config
        self.cost_multiplier = cost_multiplier
        self.rng = rng

    def cost(self, bet: float) -> float:
        return bet * self.cost_multiplier

    def roll_picks(self) -> int:
        return self.config.min_picks + self.rng.randint(
            0, self.config.max_picks - self.config.min_picks
        )
