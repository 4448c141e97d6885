"""Session and all-time play statistics."""
import time
from typing import Any, Callable

from pydantic import BaseModel


def now_ms(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)


class SessionStats(BaseModel):
    start_time: int = 0
    spins: int = 0
    wagered: float = 0
    won: float = 0
    biggest_win: float = 0
    win_count: int = 0
    loss_count: int = 0
    best_streak: int = 0
    free_spins_triggers: int = 0
    bonus_triggers: int = 0
    scatter_hits: int = 0


class AllTimeStats(BaseModel):
    """Persisted statistics. Field names match the save record."""

    totalSpins: int = 0
    totalWagered: float = 0
    totalWon: float = 0
    biggestWin: float = 0
    biggestWinBet: float = 0
    biggestWinMultiplier: int = 0
    scatterHits: int = 0
    bonusHits: int = 0
    freeSpinsTriggers: int = 0
    cascadeWins: int = 0
    maxScatters: int = 0
    maxBetCount: int = 0
    minBetCount: int = 0
    winStreak: int = 0
    bestWinStreak: int = 0
    comebacks: int = 0
    totalPlayTime: int = 0
    lastPlayed: int = 0


class Statistics:
    def __init__(self, bet_options: list[int], clock: Callable[[], float] = time.time):
        self.bet_options = list(bet_options)
        self.clock = clock
        self.session = SessionStats(start_time=now_ms(clock))
        self.all_time = AllTimeStats(lastPlayed=now_ms(clock))
        self.current_win_streak = 0
        self.current_loss_streak = 0

    def init(self, data: dict[str, Any] | None) -> None:
        if data:
            merged = {**self.all_time.model_dump(), **data}
            self.all_time = AllTimeStats.model_validate(merged)

    def record_spin(self, bet: float, won: float, is_win: bool) -> None:
        session = self.session
        all_time = self.all_time

        session.spins += 1
        session.wagered += bet
        if is_win:
            session.won += won
            session.win_count += 1
            self.current_win_streak += 1
            self.current_loss_streak = 0
            session.best_streak = max(session.best_streak, self.current_win_streak)
            session.biggest_win = max(session.biggest_win, won)
        else:
            session.loss_count += 1
            self.current_loss_streak += 1
            self.current_win_streak = 0

        all_time.totalSpins += 1
        all_time.totalWagered += bet
        if is_win:
            all_time.totalWon += won
            if won > all_time.biggestWin:
                all_time.biggestWin = won
                all_time.biggestWinBet = bet
                all_time.biggestWinMultiplier = int(won // bet) if bet > 0 else 0

        if self.current_win_streak > all_time.bestWinStreak:
            all_time.bestWinStreak = self.current_win_streak
            all_time.winStreak = self.current_win_streak

        if self.bet_options and bet == self.bet_options[-1]:
            all_time.maxBetCount += 1
        if self.bet_options and bet == self.bet_options[0]:
            all_time.minBetCount += 1

        all_time.lastPlayed = now_ms(self.clock)

    def record_feature_trigger(self, feature: str, count: int | None = None) -> None:
        if feature == "scatter":
            self.session.scatter_hits += 1
            self.all_time.scatterHits += 1
            if count is not None and count > self.all_time.maxScatters:
                self.all_time.maxScatters = count
        elif feature == "freeSpins":
            self.session.free_spins_triggers += 1
            self.all_time.freeSpinsTriggers += 1
        elif feature == "bonus":
            self.session.bonus_triggers += 1
            self.all_time.bonusHits += 1
        elif feature == "cascade":
            self.all_time.cascadeWins += 1

    def record_comeback(self) -> None:
        self.all_time.comebacks += 1

    def session_time(self) -> int:
        """Milliseconds since the session started."""
        return now_ms(self.clock) - self.session.start_time

    def session_stats(self) -> dict[str, Any]:
        session = self.session
        win_rate = round(session.win_count / session.spins * 100, 1) if session.spins else 0
        return {
            **session.model_dump(),
            "session_time": self.session_time(),
            "net_profit": session.won - session.wagered,
            "win_rate": win_rate,
        }

    def all_time_stats(self) -> dict[str, Any]:
        all_time = self.all_time
        rtp = (
            round(all_time.totalWon / all_time.totalWagered * 100, 2)
            if all_time.totalWagered
            else 0
        )
        return {
            **all_time.model_dump(),
            "netProfit": all_time.totalWon - all_time.totalWagered,
            "rtp": rtp,
        }

    def achievement_view(self, level: int) -> dict[str, Any]:
        """Flat stat view the achievement predicates read."""
        return {**self.all_time.model_dump(), "sessionTime": self.session_time(), "level": level}

    def get_save_data(self) -> dict[str, Any]:
        data = self.all_time.model_dump()
        data["totalPlayTime"] = self.all_time.totalPlayTime + self.session_time()
        return data
