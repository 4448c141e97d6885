"""Canonical mutable game state."""
import logging
import math
from numbers import Real
from typing import Any, Callable

from greedy_squirrel.config import settings
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.models import SpinCheckpoint


logger = logging.getLogger(__name__)

Listener = Callable[[Any, Any], None]


class GameStateStore:
    """
    Single authoritative game state.

    Backing fields are private; every write goes through a validated
    setter or `batch_update`. Credits and last win are floored on write.
    `bet_options[current_bet_index] == current_bet` always holds.
    """

    FIELDS = ("credits", "current_bet", "current_bet_index", "last_win", "is_spinning")

    def __init__(
        self,
        bet_options: list[int] | None = None,
        initial_credits: int | None = None,
        reel_count: int | None = None,
        max_bet_increment_percent: float | None = None,
    ):
        self._bet_options = list(bet_options or settings.bet_options)
        self._initial_credits = (
            settings.initial_credits if initial_credits is None else initial_credits
        )
        self._reel_count = reel_count or settings.reels.reel_count
        self._max_bet_increment_percent = (
            settings.max_bet_increment_percent
            if max_bet_increment_percent is None
            else max_bet_increment_percent
        )
        self._listeners: dict[str, list[Listener]] = {}
        self._apply_defaults()

    def _apply_defaults(self) -> None:
        self._credits = self._validate_amount(self._initial_credits, "credits")
        self._current_bet_index = 0
        self._current_bet = self._bet_options[0]
        self._last_win = 0
        self._is_spinning = False
        self._reel_positions = [0] * self._reel_count

    # Read access

    @property
    def credits(self) -> int:
        return self._credits

    @property
    def current_bet(self) -> float:
        return self._current_bet

    @property
    def current_bet_index(self) -> int:
        return self._current_bet_index

    @property
    def last_win(self) -> int:
        return self._last_win

    @property
    def is_spinning(self) -> bool:
        return self._is_spinning

    @property
    def reel_positions(self) -> tuple[int, ...]:
        return tuple(self._reel_positions)

    @property
    def bet_options(self) -> tuple[int, ...]:
        return tuple(self._bet_options)

    @property
    def initial_credits(self) -> int:
        return self._initial_credits

    # Validation

    @staticmethod
    def _validate_amount(value: Any, name: str) -> int:
        if isinstance(value, bool) or not isinstance(value, Real):
            raise GameError(
                ErrorCode.INVALID_AMOUNT, f"{name} must be a number, got {type(value).__name__}"
            )
        if not math.isfinite(value):
            raise GameError(ErrorCode.INVALID_AMOUNT, f"{name} must be finite: {value}")
        if value < 0:
            raise GameError(ErrorCode.INVALID_AMOUNT, f"{name} cannot be negative: {value}")
        return math.floor(value)

    def _validate_bet_index(self, index: Any) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise GameError(ErrorCode.INVALID_BET, f"Bet index must be an integer: {index!r}")
        if not 0 <= index < len(self._bet_options):
            raise GameError(ErrorCode.INVALID_BET, f"Bet index out of range: {index}")
        return index

    def _validate_bet(self, bet: Any) -> float:
        if isinstance(bet, bool) or not isinstance(bet, Real) or not math.isfinite(bet) or bet <= 0:
            raise GameError(ErrorCode.INVALID_BET, f"Invalid bet: {bet!r}")
        if bet not in self._bet_options:
            raise GameError(ErrorCode.INVALID_BET, f"Bet {bet} is not an available option")
        return bet

    @staticmethod
    def _validate_flag(value: Any) -> bool:
        if not isinstance(value, bool):
            raise GameError(
                ErrorCode.STATE_VIOLATION, f"Spinning state must be boolean, got {value!r}"
            )
        return value

    # Listeners

    def subscribe(self, field: str, listener: Listener) -> Callable[[], None]:
        """Call `listener(old, new)` after `field` changes. Returns an unsubscribe function."""
        if field not in self.FIELDS:
            raise GameError(ErrorCode.STATE_VIOLATION, f"Unknown state field: {field}")
        self._listeners.setdefault(field, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(field, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def _notify(self, changes: dict[str, tuple[Any, Any]]) -> None:
        for field, (old, new) in changes.items():
            if old == new:
                continue
            for listener in list(self._listeners.get(field, [])):
                try:
                    listener(old, new)
                except Exception:
                    logger.exception("State listener for %s failed", field)

    def _set(self, field: str, value: Any) -> None:
        old = getattr(self, f"_{field}")
        setattr(self, f"_{field}", value)
        self._notify({field: (old, value)})

    # Setters

    def set_credits(self, value: float) -> None:
        self._set("credits", self._validate_amount(value, "credits"))

    def add_credits(self, amount: float) -> None:
        amount = self._validate_amount(amount, "amount")
        self._set("credits", self._credits + amount)

    def deduct_credits(self, amount: float) -> None:
        amount = self._validate_amount(amount, "amount")
        if amount > self._credits:
            raise GameError(
                ErrorCode.INSUFFICIENT_CREDITS,
                f"Insufficient credits: {self._credits} < {amount}",
            )
        self._set("credits", self._credits - amount)

    def set_last_win(self, value: float) -> None:
        self._set("last_win", self._validate_amount(value, "last win"))

    def set_spinning(self, value: bool) -> None:
        self._set("is_spinning", self._validate_flag(value))

    def set_bet_index(self, index: int) -> None:
        """Select a bet by index; the bet follows the index."""
        index = self._validate_bet_index(index)
        self.batch_update(current_bet_index=index, current_bet=self._bet_options[index])

    def set_current_bet(self, bet: float) -> None:
        """Select a bet by value; the index follows the bet."""
        bet = self._validate_bet(bet)
        self.batch_update(current_bet=bet, current_bet_index=self._bet_options.index(bet))

    def set_reel_positions(self, positions: list[int]) -> None:
        if not isinstance(positions, (list, tuple)) or len(positions) != self._reel_count:
            raise GameError(
                ErrorCode.INVALID_REEL,
                f"Reel positions must have {self._reel_count} elements",
            )
        if not all(
            isinstance(p, int) and not isinstance(p, bool) and p >= 0 for p in positions
        ):
            raise GameError(ErrorCode.INVALID_REEL, "Reel positions must be non-negative integers")
        self._reel_positions = list(positions)

    def max_bet_increment(self) -> float:
        return self._credits * self._max_bet_increment_percent

    def change_bet(self, direction: int) -> bool:
        """
        Step the bet up or down one option.

        An increase is refused when it is not below max_bet_increment().
        Returns whether the bet changed.
        """
        if self._is_spinning:
            return False
        new_index = min(max(self._current_bet_index + direction, 0), len(self._bet_options) - 1)
        if new_index == self._current_bet_index:
            return False
        increment = self._bet_options[new_index] - self._current_bet
        if increment > 0 and increment >= self.max_bet_increment():
            return False
        self.set_bet_index(new_index)
        return True

    def set_max_bet(self) -> bool:
        """Jump to the highest bet whose increase stays below max_bet_increment()."""
        if self._is_spinning:
            return False
        limit = self.max_bet_increment()
        for index in range(len(self._bet_options) - 1, self._current_bet_index, -1):
            if self._bet_options[index] - self._current_bet < limit:
                self.set_bet_index(index)
                return True
        return False

    def batch_update(self, **updates: Any) -> None:
        """
        Validate every field first, then apply all of them.

        Nothing is written when any value is invalid. After the update the
        bet and bet index must agree.
        """
        unknown = set(updates) - set(self.FIELDS)
        if unknown:
            raise GameError(ErrorCode.STATE_VIOLATION, f"Unknown state fields: {sorted(unknown)}")

        staged: dict[str, Any] = {}
        if "credits" in updates:
            staged["credits"] = self._validate_amount(updates["credits"], "credits")
        if "last_win" in updates:
            staged["last_win"] = self._validate_amount(updates["last_win"], "last win")
        if "is_spinning" in updates:
            staged["is_spinning"] = self._validate_flag(updates["is_spinning"])
        if "current_bet_index" in updates:
            staged["current_bet_index"] = self._validate_bet_index(updates["current_bet_index"])
        if "current_bet" in updates:
            staged["current_bet"] = self._validate_bet(updates["current_bet"])

        index = staged.get("current_bet_index", self._current_bet_index)
        bet = staged.get("current_bet", self._current_bet)
        if self._bet_options[index] != bet:
            raise GameError(
                ErrorCode.STATE_VIOLATION,
                f"Bet {bet} does not match bet option {index} ({self._bet_options[index]})",
            )

        changes = {field: (getattr(self, f"_{field}"), value) for field, value in staged.items()}
        for field, value in staged.items():
            setattr(self, f"_{field}", value)
        self._notify(changes)

    def create_checkpoint(self) -> SpinCheckpoint:
        return SpinCheckpoint(
            credits=self._credits,
            lastWin=self._last_win,
            isSpinning=self._is_spinning,
            currentBet=self._current_bet,
            currentBetIndex=self._current_bet_index,
        )

    def restore_checkpoint(self, checkpoint: SpinCheckpoint) -> None:
        self.batch_update(**checkpoint.to_updates())

    def snapshot(self) -> dict[str, Any]:
        return {
            "credits": self._credits,
            "currentBet": self._current_bet,
            "currentBetIndex": self._current_bet_index,
            "lastWin": self._last_win,
            "isSpinning": self._is_spinning,
            "reelPositions": list(self._reel_positions),
        }

    def reset(self) -> None:
        """Reset every field to defaults ("reset all data")."""
        before = {field: getattr(self, f"_{field}") for field in self.FIELDS}
        self._apply_defaults()
        self._notify({field: (before[field], getattr(self, f"_{field}")) for field in self.FIELDS})
        logger.info("Game state reset to defaults")
