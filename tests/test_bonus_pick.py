"""Tests for the bonus pick game."""
import pytest

from greedy_squirrel.config import BonusConfig
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.features.bonus_pick import BonusPickController
from tests.conftest import ScriptedRNG


def make_controller(**rng_kwargs) -> BonusPickController:
    return BonusPickController(BonusConfig(), ScriptedRNG(**rng_kwargs))


def load_game(controller: BonusPickController, picks: int = 2) -> None:
    controller.init({
        "active": True,
        "totalPicks": picks,
        "picksRemaining": picks,
        "totalWin": 0,
        "prizes": [
            {"kind": "credits", "value": 100},
            {"kind": "multiplier", "value": 3},
            {"kind": "extra_pick", "value": 1},
            {"kind": "credits", "value": 50},
        ],
        "picked": [],
    })


class TestTrigger:
    """Tests for starting the pick game."""

    def test_picks_capped_at_max(self):
        controller = make_controller()
        assert controller.trigger(3) == 3
        controller.end()
        assert controller.trigger(9) == 5

    def test_pool_is_full_size(self):
        controller = make_controller()
        controller.trigger(3)
        assert len(controller.prizes) == BonusConfig().pool_size

    def test_low_rolls_are_credit_prizes(self):
        """A roll under the credits chance yields a credits prize within range."""
        controller = make_controller(default_random=0.1)
        prizes = controller.generate_prizes(3)
        assert all(p.kind == "credits" for p in prizes)
        assert all(20 <= p.value < 500 for p in prizes)

    def test_high_rolls_are_extra_picks(self):
        controller = make_controller(default_random=0.95)
        prizes = controller.generate_prizes(3)
        assert sum(1 for p in prizes if p.kind == "extra_pick") == 3

    def test_trigger_while_active_rejected(self):
        controller = make_controller()
        controller.trigger(3)
        with pytest.raises(GameError) as exc_info:
            controller.trigger(3)
        assert exc_info.value.code == ErrorCode.FEATURE_UNAVAILABLE


class TestPicks:
    """Tests for revealing prizes."""

    def test_prize_effects(self):
        """Credits add, extra pick extends the game, multiplier scales the total."""
        controller = make_controller()
        load_game(controller)

        first = controller.pick(0)
        assert first.total_win == 100
        assert first.picks_remaining == 1

        extra = controller.pick(2)
        assert extra.picks_remaining == 1
        assert controller.state.total_picks == 3

        last = controller.pick(1)
        assert last.total_win == 300
        assert last.finished

        assert controller.end() == 300
        assert not controller.is_active()

    def test_repeated_pick_is_noop(self):
        controller = make_controller()
        load_game(controller)
        controller.pick(0)
        assert controller.pick(0) is None
        assert controller.picks_remaining == 1
        assert controller.total_win == 100

    def test_pick_when_inactive(self):
        controller = make_controller()
        with pytest.raises(GameError) as exc_info:
            controller.pick(0)
        assert exc_info.value.code == ErrorCode.FEATURE_INACTIVE

    @pytest.mark.parametrize("index", [-1, 4, True, "1"])
    def test_pick_out_of_range(self, index):
        controller = make_controller()
        load_game(controller)
        with pytest.raises(GameError) as exc_info:
            controller.pick(index)
        assert exc_info.value.code == ErrorCode.INVALID_AMOUNT

    def test_unpicked_indices(self):
        controller = make_controller()
        load_game(controller)
        controller.pick(1)
        assert controller.unpicked_indices() == [0, 2, 3]


class TestSaveData:
    def test_round_trip(self):
        controller = make_controller()
        load_game(controller)
        controller.pick(0)

        restored = make_controller()
        restored.init(controller.get_save_data())

        assert restored.state == controller.state

    def test_inactive_saves_nothing(self):
        assert make_controller().get_save_data() is None
