"""Uniform random sources and the weighted reel-symbol draw."""
import logging
import random
import secrets
from abc import ABC, abstractmethod
from typing import Sequence

from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.logic.symbols import SymbolTable


logger = logging.getLogger(__name__)


class RNGBase(ABC):
    """Uniform source injected everywhere randomness is needed."""

    @abstractmethod
    def random(self) -> float:
        """Return random float in [0, 1)."""
        pass

    @abstractmethod
    def randint(self, a: int, b: int) -> int:
        """Return random int in [a, b] inclusive."""
        pass


class ProductionRNG(RNGBase):
    """
    Live-play RNG.

    Uses cryptographically secure source, no fixed seed.
    """

    def random(self) -> float:
        return secrets.randbelow(2**32) / (2**32)

    def randint(self, a: int, b: int) -> int:
        return secrets.randbelow(b - a + 1) + a


class SeededRNG(RNGBase):
    """
    Test/Simulation RNG.

    Deterministic, fully controlled by seed.
    """

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self.seed = seed

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


class WeightedRNG:
    """
    Weighted symbol draws for reel strips and cascade refills.

    Degenerate inputs raise a distinct GameError per cause:
    INVALID_REEL, NO_SYMBOLS, INVALID_WEIGHTS.
    """

    def __init__(self, symbols: SymbolTable, rng: RNGBase | None = None, reel_count: int = 5):
        self.symbols = symbols
        self.rng = rng or ProductionRNG()
        self.reel_count = reel_count

    def weighted_symbol(self, reel_index: int) -> str:
        """Draw one symbol id for a reel according to per-symbol weights."""
        if (
            isinstance(reel_index, bool)
            or not isinstance(reel_index, int)
            or not 0 <= reel_index < self.reel_count
        ):
            raise GameError(ErrorCode.INVALID_REEL, f"Invalid reel index: {reel_index}")

        candidates = self.symbols.symbols_for_reel(reel_index)
        if not candidates:
            raise GameError(
                ErrorCode.NO_SYMBOLS, f"No symbols available for reel {reel_index}"
            )

        total_weight = sum(s.weight for s in candidates)
        if total_weight <= 0:
            raise GameError(
                ErrorCode.INVALID_WEIGHTS,
                f"Total symbol weight for reel {reel_index} must be positive",
            )

        remainder = self.rng.random() * total_weight
        for symbol in candidates:
            if symbol.weight <= 0:
                continue
            remainder -= symbol.weight
            if remainder <= 0:
                return symbol.id

        # Float rounding can leave a tiny positive remainder
        return next(s.id for s in reversed(candidates) if s.weight > 0)

    def build_strip(self, reel_index: int, length: int) -> list[str]:
        """Generate an immutable-by-convention reel strip."""
        if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Strip length must be positive: {length}")
        return [self.weighted_symbol(reel_index) for _ in range(length)]

    def build_strips(self, length: int) -> list[list[str]]:
        strips = [self.build_strip(reel, length) for reel in range(self.reel_count)]
        logger.debug("Built %d reel strips of length %d", len(strips), length)
        return strips

    def random_offset(self, strip_length: int) -> int:
        """Random stop position in [0, strip_length)."""
        if isinstance(strip_length, bool) or not isinstance(strip_length, int) or strip_length <= 0:
            raise GameError(
                ErrorCode.INVALID_AMOUNT, f"Strip length must be positive: {strip_length}"
            )
        return self.rng.randint(0, strip_length - 1)

    @staticmethod
    def window(strip: Sequence[str], offset: int, count: int) -> list[str]:
        """Visible slice of a strip starting at offset, wrapping modulo its length."""
        if not strip:
            raise GameError(ErrorCode.INVALID_REEL, "Cannot slice an empty strip")
        if count < 0:
            raise GameError(ErrorCode.INVALID_AMOUNT, f"Window size must be non-negative: {count}")
        length = len(strip)
        return [strip[(offset + i) % length] for i in range(count)]
