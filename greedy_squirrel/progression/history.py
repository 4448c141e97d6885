"""Recent spin history, newest first."""
import time
from typing import Any, Callable

from pydantic import BaseModel, Field


BIG_WIN_MULTIPLE = 20


class SpinHistoryEntry(BaseModel):
    timestamp: int
    bet: float
    win: float
    profit: float
    multiplier: float
    features: list[str] = Field(default_factory=list)
    isBigWin: bool = False


class SpinHistory:
    def __init__(self, max_entries: int = 20, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries
        self.clock = clock
        self.entries: list[SpinHistoryEntry] = []

    def record(self, bet: float, win: float, features: list[str] | None = None) -> SpinHistoryEntry:
        entry = SpinHistoryEntry(
            timestamp=int(self.clock() * 1000),
            bet=bet,
            win=win,
            profit=win - bet,
            multiplier=round(win / bet, 2) if bet > 0 else 0,
            features=list(features or []),
            isBigWin=bet > 0 and win >= bet * BIG_WIN_MULTIPLE,
        )
        self.entries.insert(0, entry)
        del self.entries[self.max_entries:]
        return entry

    def summary(self) -> dict[str, Any]:
        if not self.entries:
            return {"spins": 0, "totalBet": 0, "totalWin": 0, "profit": 0, "winRate": 0, "biggestWin": 0}
        total_bet = sum(e.bet for e in self.entries)
        total_win = sum(e.win for e in self.entries)
        wins = sum(1 for e in self.entries if e.win > 0)
        return {
            "spins": len(self.entries),
            "totalBet": total_bet,
            "totalWin": total_win,
            "profit": total_win - total_bet,
            "winRate": round(wins / len(self.entries) * 100, 1),
            "biggestWin": max(e.win for e in self.entries),
        }

    def clear(self) -> None:
        self.entries = []

    def get_save_data(self) -> dict[str, Any]:
        return {"entries": [e.model_dump() for e in self.entries]}

    def init(self, data: dict[str, Any] | None) -> None:
        if not data:
            return
        entries = [SpinHistoryEntry.model_validate(e) for e in data.get("entries", [])]
        self.entries = entries[: self.max_entries]
