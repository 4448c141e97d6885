"""Achievement definitions and unlock tracking."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel


logger = logging.getLogger(__name__)


@dataclass
class AchievementContext:
    """Everything an achievement predicate may look at."""

    stats: dict[str, Any]
    last_win: float
    bet: float
    credits: int
    unlocked_count: int


@dataclass(frozen=True)
class AchievementDef:
    id: str
    name: str
    description: str
    icon: str
    reward: int
    check: Callable[[AchievementContext], bool]


class AchievementStatus(BaseModel):
    id: str
    unlocked: bool = False
    unlockedAt: int | None = None


ACHIEVEMENTS: list[AchievementDef] = [
    # Beginner
    AchievementDef("first_spin", "First Spin", "Spin the reels for the first time", "🎰", 100,
                   lambda c: c.stats["totalSpins"] >= 1),
    AchievementDef("first_win", "First Win", "Win your first payout", "💰", 150,
                   lambda c: c.stats["totalWon"] > 0),
    AchievementDef("ten_spins", "Getting Started", "Play 10 spins", "🔟", 200,
                   lambda c: c.stats["totalSpins"] >= 10),
    # Spin milestones
    AchievementDef("hundred_spins", "Persistent", "Play 100 spins", "💯", 500,
                   lambda c: c.stats["totalSpins"] >= 100),
    AchievementDef("five_hundred_spins", "Dedicated", "Play 500 spins", "🎯", 1000,
                   lambda c: c.stats["totalSpins"] >= 500),
    AchievementDef("thousand_spins", "Veteran", "Play 1000 spins", "👑", 2500,
                   lambda c: c.stats["totalSpins"] >= 1000),
    # Wins
    AchievementDef("big_winner", "Big Winner", "Win 100x bet or more in a single spin", "💎", 300,
                   lambda c: c.bet > 0 and c.last_win >= c.bet * 100),
    AchievementDef("mega_win", "Mega Win", "Win 500x bet or more", "🌟", 1000,
                   lambda c: c.bet > 0 and c.last_win >= c.bet * 500),
    AchievementDef("lucky_streak", "Lucky Streak", "Win 5 consecutive spins", "🍀", 500,
                   lambda c: c.stats["winStreak"] >= 5),
    AchievementDef("millionaire", "Millionaire", "Reach 10,000 credits", "💵", 1000,
                   lambda c: c.credits >= 10000),
    # Features
    AchievementDef("scatter_master", "Scatter Master", "Hit 5 scatter symbols", "⭐", 1500,
                   lambda c: c.stats["maxScatters"] >= 5),
    AchievementDef("free_spin_fan", "Free Spin Fan", "Trigger free spins 10 times", "🎡", 750,
                   lambda c: c.stats["freeSpinsTriggers"] >= 10),
    AchievementDef("free_spin_master", "Free Spin Master", "Trigger free spins 50 times", "🎪", 2000,
                   lambda c: c.stats["freeSpinsTriggers"] >= 50),
    AchievementDef("bonus_hunter", "Bonus Hunter", "Trigger bonus round 25 times", "🎁", 1000,
                   lambda c: c.stats["bonusHits"] >= 25),
    AchievementDef("cascade_king", "Cascade King", "Achieve 10 cascade wins", "🔥", 800,
                   lambda c: c.stats["cascadeWins"] >= 10),
    # Betting
    AchievementDef("high_roller", "High Roller", "Bet maximum 50 times", "💸", 600,
                   lambda c: c.stats["maxBetCount"] >= 50),
    AchievementDef("conservative", "Conservative", "Play 100 spins at minimum bet", "🐌", 300,
                   lambda c: c.stats["minBetCount"] >= 100),
    # Time-based
    AchievementDef("marathon", "Marathon Player", "Play for 1 hour in one session", "⏰", 1500,
                   lambda c: c.stats["sessionTime"] >= 3_600_000),
    AchievementDef("comeback", "Comeback Kid", "Go from 0 credits back to 5000+", "🔄", 2000,
                   lambda c: c.stats["comebacks"] >= 1),
    # Special
    AchievementDef("explorer", "Explorer", "Unlock all features", "🗺️", 3000,
                   lambda c: c.stats["level"] >= 20),
    AchievementDef("perfectionist", "Perfectionist", "Unlock all achievements", "🏆", 5000,
                   lambda c: c.unlocked_count >= 19),
]


class Achievements:
    def __init__(
        self,
        state: Any = None,
        definitions: list[AchievementDef] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.definitions = list(definitions if definitions is not None else ACHIEVEMENTS)
        self.clock = clock
        self.status = {d.id: AchievementStatus(id=d.id) for d in self.definitions}

    def init(self, data: dict[str, Any] | None) -> None:
        if not data:
            return
        for saved in data.get("achievements", []):
            status = self.status.get(saved.get("id"))
            if status is not None:
                status.unlocked = bool(saved.get("unlocked", False))
                status.unlockedAt = saved.get("unlockedAt")

    @property
    def unlocked_count(self) -> int:
        return sum(1 for s in self.status.values() if s.unlocked)

    def check(
        self, stats: dict[str, Any], last_win: float, bet: float, credits: int
    ) -> list[AchievementDef]:
        """Unlock every newly satisfied achievement and pay its reward."""
        newly_unlocked: list[AchievementDef] = []
        for definition in self.definitions:
            status = self.status[definition.id]
            if status.unlocked:
                continue
            context = AchievementContext(
                stats=stats,
                last_win=last_win,
                bet=bet,
                credits=credits,
                unlocked_count=self.unlocked_count,
            )
            if not definition.check(context):
                continue
            status.unlocked = True
            status.unlockedAt = int(self.clock() * 1000)
            newly_unlocked.append(definition)
            if definition.reward and self.state is not None:
                self.state.add_credits(definition.reward)
            logger.info("Achievement unlocked: %s", definition.id)
        return newly_unlocked

    def summary(self) -> dict[str, Any]:
        unlocked = self.unlocked_count
        total = len(self.definitions)
        return {
            "unlocked": unlocked,
            "total": total,
            "completion": round(unlocked / total * 100, 1) if total else 0,
        }

    def get_save_data(self) -> dict[str, Any]:
        return {"achievements": [s.model_dump() for s in self.status.values()]}
