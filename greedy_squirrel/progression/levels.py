"""Experience levels, rewards and feature unlocks."""
import logging
import math
from typing import Any, Callable

from pydantic import BaseModel, Field

from greedy_squirrel.config import LevelReward, ProgressionConfig


logger = logging.getLogger(__name__)


class LevelUp(BaseModel):
    level: int
    reward: LevelReward | None = None


class LevelProgress(BaseModel):
    level: int
    xp: int
    current_level_xp: int
    next_level_xp: int
    progress: float
    unlocked_features: list[str] = Field(default_factory=list)


def xp_per_level(level: int) -> int:
    """XP needed to advance into `level`: floor(level * 100 * 1.1^level)."""
    return math.floor(level * 100 * math.pow(1.1, level))


def xp_for_level(level: int) -> int:
    """Cumulative XP for levels 1..level."""
    return sum(xp_per_level(i) for i in range(1, level + 1))


def level_from_xp(xp: int, max_level: int = 50) -> tuple[int, int, int]:
    """Returns (level, xp into current level, xp needed for the next level)."""
    level = 1
    spent = 0
    while level < max_level:
        needed = xp_per_level(level + 1)
        if spent + needed > xp:
            break
        spent += needed
        level += 1
    return level, xp - spent, xp_per_level(level + 1)


class LevelSystem:
    """
    Tracks XP and level. Every level crossed pays its configured reward:
    credits go to the game state, feature rewards unlock the feature and
    run its unlock hook.
    """

    def __init__(self, config: ProgressionConfig, state: Any = None):
        self.config = config
        self.state = state
        self.xp = 0
        self.level = 1
        self.unlocked_features: set[str] = set()
        self.unlock_hooks: dict[str, Callable[[], None]] = {}

    def init(self, data: dict[str, Any] | None) -> None:
        if not data:
            return
        self.xp = int(data.get("xp", 0) or 0)
        self.unlocked_features = set(data.get("unlockedFeatures", []))
        self.level = level_from_xp(self.xp, self.config.max_level)[0]

    def xp_for(self, source: str, amount: float = 0, bet: float = 0) -> int:
        cfg = self.config
        if source == "spin":
            gained = cfg.xp_spin_base + (bet / 10) * cfg.xp_spin_multiplier
        elif source == "win":
            gained = (amount / 20) * cfg.xp_win_multiplier
        elif source == "bigWin":
            gained = cfg.xp_big_win
        elif source == "scatter":
            gained = cfg.xp_scatter_hit
        elif source == "bonus":
            gained = cfg.xp_bonus_round
        elif source == "freeSpins":
            gained = cfg.xp_free_spins
        else:
            gained = amount
        return math.floor(gained)

    def award_xp(self, source: str, amount: float = 0, bet: float = 0) -> list[LevelUp]:
        """Add XP for an action and return the level-ups it caused."""
        gained = self.xp_for(source, amount, bet)
        if gained <= 0:
            return []
        self.xp += gained
        old_level = self.level
        self.level = level_from_xp(self.xp, self.config.max_level)[0]
        return [self._on_level_up(level) for level in range(old_level + 1, self.level + 1)]

    def _on_level_up(self, level: int) -> LevelUp:
        reward = self.config.level_rewards.get(level)
        logger.info("Level up: %d", level)
        if reward is not None:
            if reward.credits and self.state is not None:
                self.state.add_credits(reward.credits)
            if reward.type == "feature":
                feature = str(reward.value)
                self.unlocked_features.add(feature)
                hook = self.unlock_hooks.get(feature)
                if hook is not None:
                    hook()
        return LevelUp(level=level, reward=reward)

    def is_feature_unlocked(self, feature: str) -> bool:
        return feature in self.unlocked_features

    def get_progress(self) -> LevelProgress:
        level, current, needed = level_from_xp(self.xp, self.config.max_level)
        return LevelProgress(
            level=level,
            xp=self.xp,
            current_level_xp=current,
            next_level_xp=needed,
            progress=min(current / needed * 100, 100) if needed else 100,
            unlocked_features=sorted(self.unlocked_features),
        )

    def get_save_data(self) -> dict[str, Any]:
        return {"xp": self.xp, "unlockedFeatures": sorted(self.unlocked_features)}
