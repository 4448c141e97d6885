"""Game configuration with defaults from the Greedy Squirrel game tables."""
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PAYLINES: list[list[int]] = [
    [1, 1, 1, 1, 1],  # Middle
    [0, 0, 0, 0, 0],  # Top
    [2, 2, 2, 2, 2],  # Bottom
    [0, 1, 2, 1, 0],  # V
    [2, 1, 0, 1, 2],  # Inverted V
    [0, 1, 1, 1, 0],
    [2, 1, 1, 1, 2],
    [1, 0, 1, 2, 1],
    [1, 2, 1, 0, 1],
    [0, 0, 1, 2, 2],  # Diagonal
]


class ReelConfig(BaseModel):
    """Reel grid dimensions."""

    reel_count: int = Field(default=5, ge=3)
    row_count: int = Field(default=3, ge=1)
    symbols_per_reel: int = Field(default=20, ge=1)


class AnticipationConfig(BaseModel):
    """Near-miss pacing heuristic. Delays are seconds."""

    enabled: bool = True
    trigger_chance: float = Field(default=0.25, ge=0.0, le=1.0)
    fluke_chance: float = Field(default=0.15, ge=0.0, le=1.0)
    dramatic_delay_high: float = 0.8
    dramatic_delay_medium: float = 0.4


class FreeSpinsConfig(BaseModel):
    """Free spins award table and session multipliers."""

    min_scatters: int = 3
    scatter_counts: dict[int, int] = Field(default_factory=lambda: {3: 10, 4: 15, 5: 25})
    multipliers: list[int] = Field(default_factory=lambda: [2, 3])
    can_retrigger: bool = True


class BonusConfig(BaseModel):
    """Bonus pick game sizing and prize ranges."""

    min_bonus_symbols: int = 3
    min_picks: int = 3
    max_picks: int = 5
    pool_size: int = 12
    credits_min: int = 50
    credits_max: int = 500
    multiplier_min: int = 2
    multiplier_max: int = 10
    extra_pick_value: int = 1
    credits_chance: float = 0.6
    multiplier_chance: float = 0.3
    filler_min: int = 20
    filler_max: int = 120


class GambleConfig(BaseModel):
    """Double-up limits."""

    max_win_amount: int = 5000
    max_attempts: int = 5
    offer_timeout: float = 5.0


class CascadeConfig(BaseModel):
    """Tumble resolution limits."""

    enabled: bool = False
    max_iterations: int = Field(default=20, ge=1)
    multipliers: list[int] = Field(default_factory=lambda: [1, 2, 3, 5, 8])
    step_delay: float = 0.3


class TimingConfig(BaseModel):
    """Presentation pacing in seconds."""

    reel_spin_time: float = 2.0
    reel_stagger: float = 0.2
    turbo_reel_spin_time: float = 0.8
    turbo_reel_stagger: float = 0.1
    free_spin_delay: float = 1.5
    autoplay_delay: float = 1.0
    turbo_autoplay_delay: float = 0.5


class LevelReward(BaseModel):
    """Reward granted when a level is reached."""

    type: str  # "feature" | "betIncrease" | "dailyBonus" | "multiplier" | "max"
    value: str | float
    credits: int


def _default_level_rewards() -> dict[int, LevelReward]:
    return {
        5: LevelReward(type="feature", value="autoplay", credits=500),
        10: LevelReward(type="feature", value="turbo", credits=1000),
        15: LevelReward(type="betIncrease", value=500, credits=1500),
        20: LevelReward(type="feature", value="cascade", credits=2000),
        25: LevelReward(type="dailyBonus", value=1000, credits=2500),
        30: LevelReward(type="betIncrease", value=1000, credits=3000),
        35: LevelReward(type="multiplier", value=1.1, credits=4000),
        40: LevelReward(type="betIncrease", value=2000, credits=5000),
        45: LevelReward(type="multiplier", value=1.2, credits=7500),
        50: LevelReward(type="max", value="everything", credits=10000),
    }


class ProgressionConfig(BaseModel):
    """Levels, XP sources and daily challenge cadence."""

    max_level: int = 50
    xp_spin_base: float = 1
    xp_spin_multiplier: float = 0.1
    xp_win_multiplier: float = 0.05
    xp_big_win: int = 50
    xp_scatter_hit: int = 25
    xp_bonus_round: int = 100
    xp_free_spins: int = 75
    level_rewards: dict[int, LevelReward] = Field(default_factory=_default_level_rewards)
    challenges_per_day: int = 3
    comeback_threshold: int = 5000


class Settings(BaseSettings):
    """Game settings. Override with SLOTS_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="SLOTS_", env_nested_delimiter="__")

    debug: bool = False

    # Persistence
    redis_url: str = "redis://localhost:6379/0"
    save_key: str = "greedy_squirrel_save"
    save_ttl_seconds: int = 30 * 86400

    # Economy
    initial_credits: int = 1000
    bet_options: list[int] = Field(
        default_factory=lambda: [10, 20, 50, 100, 200, 500, 1000, 2000]
    )
    max_bet_increment_percent: float = 0.1
    big_win_threshold: int = 50
    mega_win_threshold: int = 100
    buy_bonus_cost_multiplier: int = 100
    spin_history_max_entries: int = 20

    reels: ReelConfig = Field(default_factory=ReelConfig)
    paylines: list[list[int]] = Field(default_factory=lambda: [list(p) for p in DEFAULT_PAYLINES])
    anticipation: AnticipationConfig = Field(default_factory=AnticipationConfig)
    free_spins: FreeSpinsConfig = Field(default_factory=FreeSpinsConfig)
    bonus: BonusConfig = Field(default_factory=BonusConfig)
    gamble: GambleConfig = Field(default_factory=GambleConfig)
    cascade: CascadeConfig = Field(default_factory=CascadeConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    progression: ProgressionConfig = Field(default_factory=ProgressionConfig)

    @model_validator(mode="after")
    def _check_tables(self) -> "Settings":
        if not self.bet_options:
            raise ValueError("bet_options must not be empty")
        if any(b <= 0 for b in self.bet_options):
            raise ValueError("bet_options must be positive")
        if any(a >= b for a, b in zip(self.bet_options, self.bet_options[1:])):
            raise ValueError("bet_options must be strictly increasing")
        if not self.paylines:
            raise ValueError("paylines must not be empty")
        for index, line in enumerate(self.paylines):
            if len(line) != self.reels.reel_count:
                raise ValueError(f"payline {index} must have {self.reels.reel_count} rows")
            if any(row < 0 or row >= self.reels.row_count for row in line):
                raise ValueError(f"payline {index} has a row outside the grid")
        if not self.cascade.multipliers:
            raise ValueError("cascade multipliers must not be empty")
        if not self.free_spins.multipliers or not self.free_spins.scatter_counts:
            raise ValueError("free spins tables must not be empty")
        if self.bonus.min_picks > self.bonus.max_picks:
            raise ValueError("bonus min_picks exceeds max_picks")
        return self


settings = Settings()
