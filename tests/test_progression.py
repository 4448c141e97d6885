"""Tests for statistics, levels, achievements, daily challenges and history."""
import pytest

from greedy_squirrel.config import LevelReward, ProgressionConfig
from greedy_squirrel.progression.achievements import Achievements
from greedy_squirrel.progression.challenges import DailyChallenges, next_midnight_ms
from greedy_squirrel.progression.history import SpinHistory
from greedy_squirrel.progression.levels import (
    LevelSystem,
    level_from_xp,
    xp_for_level,
    xp_per_level,
)
from greedy_squirrel.progression.statistics import Statistics
from greedy_squirrel.state import GameStateStore
from tests.conftest import ScriptedRNG


NOW = 1_700_000_000.0


def fixed_clock() -> float:
    return NOW


@pytest.fixture
def state() -> GameStateStore:
    return GameStateStore(bet_options=[10, 20, 50], initial_credits=1000, reel_count=5)


@pytest.fixture
def statistics() -> Statistics:
    return Statistics([10, 20, 50], clock=fixed_clock)


class TestStatistics:
    """Tests for spin and feature bookkeeping."""

    def test_streaks_and_biggest_win(self, statistics: Statistics):
        statistics.record_spin(10, 50, True)
        statistics.record_spin(10, 30, True)
        statistics.record_spin(10, 0, False)

        all_time = statistics.all_time
        assert all_time.totalSpins == 3
        assert all_time.totalWagered == 30
        assert all_time.totalWon == 80
        assert all_time.biggestWin == 50
        assert all_time.biggestWinMultiplier == 5
        assert all_time.bestWinStreak == 2
        assert statistics.current_win_streak == 0
        assert statistics.current_loss_streak == 1

    def test_min_and_max_bet_counts(self, statistics: Statistics):
        statistics.record_spin(10, 0, False)
        statistics.record_spin(50, 0, False)
        statistics.record_spin(20, 0, False)
        assert statistics.all_time.minBetCount == 1
        assert statistics.all_time.maxBetCount == 1

    def test_derived_views(self, statistics: Statistics):
        statistics.record_spin(10, 100, True)
        statistics.record_spin(10, 0, False)
        statistics.record_spin(10, 0, False)

        session = statistics.session_stats()
        assert session["win_rate"] == 33.3
        assert session["net_profit"] == 70
        assert session["session_time"] == 0
        assert statistics.all_time_stats()["rtp"] == 333.33

    def test_max_scatters_keeps_best(self, statistics: Statistics):
        statistics.record_feature_trigger("scatter", 7)
        statistics.record_feature_trigger("scatter", 4)
        assert statistics.all_time.maxScatters == 7
        assert statistics.all_time.scatterHits == 2

    def test_init_merges_over_defaults(self, statistics: Statistics):
        statistics.init({"totalSpins": 42})
        assert statistics.all_time.totalSpins == 42
        assert statistics.all_time.bonusHits == 0


class TestLevels:
    """Tests for the XP curve and level rewards."""

    def test_xp_curve(self):
        assert xp_per_level(2) == 242
        assert xp_per_level(3) == 399
        assert xp_for_level(1) == 110
        assert level_from_xp(0) == (1, 0, 242)
        assert level_from_xp(242) == (2, 0, 399)

    def test_xp_sources(self):
        levels = LevelSystem(ProgressionConfig())
        assert levels.xp_for("spin", bet=100) == 2
        assert levels.xp_for("win", amount=400) == 1
        assert levels.xp_for("bonus") == 100
        assert levels.xp_for("freeSpins") == 75

    def test_bonus_rounds_level_up(self):
        levels = LevelSystem(ProgressionConfig())
        assert levels.award_xp("bonus") == []
        assert levels.award_xp("bonus") == []
        ups = levels.award_xp("bonus")
        assert [u.level for u in ups] == [2]
        assert levels.level == 2

    def test_every_crossed_level_pays(self, state: GameStateStore):
        config = ProgressionConfig(level_rewards={
            2: LevelReward(type="betIncrease", value=20, credits=10),
            3: LevelReward(type="dailyBonus", value=100, credits=20),
        })
        levels = LevelSystem(config, state)

        ups = levels.award_xp("custom", amount=700)

        assert [u.level for u in ups] == [2, 3]
        assert state.credits == 1030

    def test_feature_unlock_runs_hook(self, state: GameStateStore):
        config = ProgressionConfig(level_rewards={
            2: LevelReward(type="feature", value="cascade", credits=50),
        })
        levels = LevelSystem(config, state)
        unlocked = []
        levels.unlock_hooks["cascade"] = lambda: unlocked.append("cascade")

        levels.award_xp("custom", amount=242)

        assert levels.is_feature_unlocked("cascade")
        assert unlocked == ["cascade"]
        assert state.credits == 1050

    def test_init_recomputes_level(self):
        levels = LevelSystem(ProgressionConfig())
        levels.init({"xp": 700, "unlockedFeatures": ["turbo"]})
        assert levels.level == 3
        assert levels.is_feature_unlocked("turbo")
        progress = levels.get_progress()
        assert progress.current_level_xp == 700 - 242 - 399
        assert progress.unlocked_features == ["turbo"]


class TestAchievements:
    """Tests for unlock checks and rewards."""

    def test_first_spin_unlocks_once(self, state: GameStateStore, statistics: Statistics):
        achievements = Achievements(state, clock=fixed_clock)
        statistics.record_spin(10, 0, False)
        view = statistics.achievement_view(1)

        first = achievements.check(view, last_win=0, bet=10, credits=state.credits)
        second = achievements.check(view, last_win=0, bet=10, credits=state.credits)

        assert [a.id for a in first] == ["first_spin"]
        assert second == []
        assert state.credits == 1100
        assert achievements.status["first_spin"].unlockedAt == int(NOW * 1000)

    def test_big_win_relative_to_bet(self, statistics: Statistics):
        achievements = Achievements(clock=fixed_clock)
        statistics.record_spin(10, 1000, True)
        view = statistics.achievement_view(1)

        unlocked = {a.id for a in achievements.check(view, last_win=1000, bet=10, credits=1000)}

        assert "big_winner" in unlocked
        assert "mega_win" not in unlocked

    def test_save_round_trip(self, statistics: Statistics):
        achievements = Achievements(clock=fixed_clock)
        statistics.record_spin(10, 0, False)
        achievements.check(statistics.achievement_view(1), 0, 10, 1000)

        restored = Achievements(clock=fixed_clock)
        restored.init(achievements.get_save_data())

        assert restored.status["first_spin"].unlocked
        assert restored.summary()["unlocked"] == 1


def challenge(kind: str, target: int, reward: int = 100) -> dict:
    return {"id": kind, "name": kind, "description": "", "reward": reward, "target": target}


@pytest.fixture
def challenges(state: GameStateStore) -> DailyChallenges:
    daily = DailyChallenges(state, ScriptedRNG(), clock=fixed_clock)
    daily.init({
        "challenges": [challenge("big_win", 60), challenge("play_spins", 2, reward=200)],
        "resetAt": int(NOW * 1000) + 1000,
    })
    return daily


class TestChallenges:
    """Tests for daily challenge progress and claiming."""

    def test_big_win_tracks_best_value(self, challenges: DailyChallenges):
        assert challenges.update_progress("big_win", 30) == []
        challenges.update_progress("big_win", 20)
        assert challenges.challenges[0].progress == 30

        done = challenges.update_progress("big_win", 70)

        assert [c.id for c in done] == ["big_win"]
        assert challenges.challenges[0].progress == 60

    def test_spin_count_accumulates(self, challenges: DailyChallenges):
        challenges.update_progress("play_spins")
        assert not challenges.challenges[1].completed
        challenges.update_progress("play_spins")
        assert challenges.challenges[1].completed

    def test_claim_pays_once(self, challenges: DailyChallenges, state: GameStateStore):
        assert challenges.claim("play_spins") == 0
        challenges.update_progress("play_spins", 2)

        assert challenges.claim("play_spins") == 200
        assert challenges.claim("play_spins") == 0
        assert state.credits == 1200

    def test_expired_set_is_regenerated(self, state: GameStateStore):
        daily = DailyChallenges(state, ScriptedRNG(), clock=fixed_clock)
        daily.init({"challenges": [challenge("big_win", 60)], "resetAt": int(NOW * 1000) - 1})

        assert len(daily.challenges) == 3
        assert daily.reset_at == next_midnight_ms(NOW)
        assert daily.reset_at > NOW * 1000

    def test_generated_targets_within_span(self, state: GameStateStore):
        daily = DailyChallenges(state, ScriptedRNG(default_random=0.0), clock=fixed_clock)
        generated = daily.generate()
        ids = [c.id for c in generated]
        assert len(set(ids)) == 3
        play = next((c for c in generated if c.id == "play_spins"), None)
        if play is not None:
            assert play.target == 50


class TestHistory:
    """Tests for the recent spin list."""

    def test_newest_first_and_capped(self):
        history = SpinHistory(max_entries=3, clock=fixed_clock)
        for bet in (10, 20, 30, 40, 50):
            history.record(bet, 0)
        assert [e.bet for e in history.entries] == [50, 40, 30]

    def test_big_win_flag(self):
        history = SpinHistory(clock=fixed_clock)
        entry = history.record(10, 200, ["scatter"])
        assert entry.isBigWin
        assert entry.multiplier == 20
        assert entry.profit == 190
        assert not history.record(10, 190).isBigWin

    def test_summary(self):
        history = SpinHistory(clock=fixed_clock)
        assert history.summary()["spins"] == 0
        history.record(10, 0)
        history.record(10, 30)
        summary = history.summary()
        assert summary == {
            "spins": 2,
            "totalBet": 20,
            "totalWin": 30,
            "profit": 10,
            "winRate": 50.0,
            "biggestWin": 30,
        }
