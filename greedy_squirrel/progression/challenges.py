"""Daily challenges: three random goals per day, reset at local midnight."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import BaseModel

from greedy_squirrel.logic.rng import ProductionRNG, RNGBase


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeType:
    id: str
    name: str
    description: str
    icon: str
    reward: int
    target_min: int
    target_span: int  # target = target_min + floor(u * target_span)
    max_semantics: bool = False  # progress is the best value seen, not a running sum


CHALLENGE_TYPES: list[ChallengeType] = [
    ChallengeType("win_amount", "Big Earner", "Win {target} credits today", "💰", 300, 1000, 2000),
    ChallengeType("trigger_freespins", "Scatter Hunter", "Trigger free spins {target} times", "⭐", 500, 2, 3),
    ChallengeType("play_spins", "Daily Grind", "Play {target} spins", "🎰", 200, 50, 50),
    ChallengeType("hit_scatters", "Lucky Stars", "Hit {target} scatter symbols", "✨", 250, 10, 10),
    ChallengeType("trigger_bonus", "Bonus Seeker", "Trigger bonus round {target} times", "🎁", 400, 1, 2),
    ChallengeType("big_win", "Go Big", "Get a win of {target}x bet or higher", "💎", 600, 50, 50,
                  max_semantics=True),
]


class Challenge(BaseModel):
    id: str
    name: str
    description: str
    reward: int
    target: int
    progress: float = 0
    completed: bool = False
    claimed: bool = False


def next_midnight_ms(now: float) -> int:
    """Epoch milliseconds of the next local midnight after `now` (epoch seconds)."""
    current = datetime.fromtimestamp(now)
    tomorrow = (current + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return int(tomorrow.timestamp() * 1000)


class DailyChallenges:
    def __init__(
        self,
        state: Any = None,
        rng: RNGBase | None = None,
        per_day: int = 3,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.rng = rng or ProductionRNG()
        self.per_day = per_day
        self.clock = clock
        self.challenges: list[Challenge] = []
        self.reset_at = 0

    def init(self, data: dict[str, Any] | None) -> None:
        if data:
            self.challenges = [Challenge.model_validate(c) for c in data.get("challenges", [])]
            self.reset_at = int(data.get("resetAt", 0) or 0)
        if self.should_refresh():
            self.generate()

    def should_refresh(self) -> bool:
        return not self.challenges or self.clock() * 1000 >= self.reset_at

    def generate(self) -> list[Challenge]:
        pool = list(CHALLENGE_TYPES)
        for i in range(len(pool) - 1, 0, -1):
            j = self.rng.randint(0, i)
            pool[i], pool[j] = pool[j], pool[i]

        self.challenges = [
            Challenge(
                id=kind.id,
                name=kind.name,
                description=kind.description,
                reward=kind.reward,
                target=kind.target_min + int(self.rng.random() * kind.target_span),
            )
            for kind in pool[: self.per_day]
        ]
        self.reset_at = next_midnight_ms(self.clock())
        logger.info("Daily challenges: %s", [c.id for c in self.challenges])
        return self.challenges

    def update_progress(self, kind: str, amount: float = 1) -> list[Challenge]:
        """Advance matching challenges. Returns the ones completed by this update."""
        if self.should_refresh():
            self.generate()
        definition = next((t for t in CHALLENGE_TYPES if t.id == kind), None)
        completed: list[Challenge] = []
        for challenge in self.challenges:
            if challenge.id != kind or challenge.completed:
                continue
            if definition is not None and definition.max_semantics:
                challenge.progress = max(challenge.progress, amount)
            else:
                challenge.progress += amount
            if challenge.progress >= challenge.target:
                challenge.progress = challenge.target
                challenge.completed = True
                completed.append(challenge)
                logger.info("Challenge completed: %s", challenge.id)
        return completed

    def claim(self, challenge_id: str) -> int:
        """Pay a completed challenge's reward once. Returns credits paid."""
        challenge = next((c for c in self.challenges if c.id == challenge_id), None)
        if challenge is None or not challenge.completed or challenge.claimed:
            return 0
        challenge.claimed = True
        if self.state is not None:
            self.state.add_credits(challenge.reward)
        return challenge.reward

    def get_save_data(self) -> dict[str, Any]:
        return {
            "challenges": [c.model_dump() for c in self.challenges],
            "resetAt": self.reset_at,
        }
