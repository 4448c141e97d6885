"""Symbol definitions and lookup table."""
from enum import Enum

from pydantic import BaseModel, Field


class SymbolKind(str, Enum):
    """Category tag that decides how a symbol is evaluated."""

    WILD = "wild"
    SCATTER = "scatter"
    BONUS = "bonus"
    STANDARD = "standard"


class SymbolDef(BaseModel):
    """Static definition of one reel symbol."""

    id: str
    glyph: str
    name: str
    kind: SymbolKind = SymbolKind.STANDARD
    weight: float = Field(ge=0)
    payouts: dict[int, int] = Field(default_factory=dict)
    allowed_reels: list[int] | None = None
    tier: str = "standard"  # "special" | "premium" | "standard"


DEFAULT_SYMBOLS: list[SymbolDef] = [
    SymbolDef(
        id="WILD", glyph="🃏", name="Wild Card", kind=SymbolKind.WILD,
        weight=5, allowed_reels=[1, 2, 3], tier="special",
    ),
    SymbolDef(
        id="SCATTER", glyph="⭐", name="Lucky Star", kind=SymbolKind.SCATTER,
        weight=3, payouts={3: 20, 4: 100, 5: 500}, tier="special",
    ),
    SymbolDef(
        id="BONUS", glyph="🎁", name="Bonus Gift", kind=SymbolKind.BONUS,
        weight=2, allowed_reels=[0, 2, 4], tier="special",
    ),
    SymbolDef(id="CROWN", glyph="👑", name="Golden Crown", weight=10,
              payouts={3: 10, 4: 40, 5: 200}, tier="premium"),
    SymbolDef(id="DIAMOND", glyph="💎", name="Diamond", weight=12,
              payouts={3: 8, 4: 30, 5: 150}, tier="premium"),
    SymbolDef(id="ACORN", glyph="🌰", name="Premium Acorn", weight=15,
              payouts={3: 5, 4: 25, 5: 100}, tier="premium"),
    SymbolDef(id="PEANUT", glyph="🥜", name="Peanuts", weight=15,
              payouts={3: 5, 4: 25, 5: 100}, tier="premium"),
    SymbolDef(id="SUNFLOWER", glyph="🌻", name="Sunflower Seeds", weight=20,
              payouts={3: 4, 4: 20, 5: 80}),
    SymbolDef(id="MUSHROOM", glyph="🍄", name="Mushroom", weight=25,
              payouts={3: 3, 4: 15, 5: 60}),
    SymbolDef(id="PINECONE", glyph="🌲", name="Pine Cone", weight=30,
              payouts={3: 2, 4: 10, 5: 40}),
    SymbolDef(id="LEAF", glyph="🍂", name="Autumn Leaf", weight=35,
              payouts={3: 2, 4: 8, 5: 20}),
]


class SymbolTable:
    """Ordered symbol set with lookups used by the RNG and evaluator."""

    def __init__(self, symbols: list[SymbolDef] | None = None):
        self._order = list(symbols if symbols is not None else DEFAULT_SYMBOLS)
        self._by_id = {s.id: s for s in self._order}

    def __iter__(self):
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, symbol_id: object) -> bool:
        return symbol_id in self._by_id

    def get(self, symbol_id: str) -> SymbolDef | None:
        return self._by_id.get(symbol_id)

    def payout(self, symbol_id: str, count: int) -> int | None:
        """Payout multiplier for `count` matches, or None when the table has no entry."""
        symbol = self._by_id.get(symbol_id)
        if symbol is None:
            return None
        return symbol.payouts.get(count)

    def symbols_for_reel(self, reel_index: int) -> list[SymbolDef]:
        """Symbols allowed to land on a reel, in table order."""
        return [
            s for s in self._order
            if s.allowed_reels is None or reel_index in s.allowed_reels
        ]

    def _first_of_kind(self, kind: SymbolKind) -> str | None:
        for symbol in self._order:
            if symbol.kind == kind:
                return symbol.id
        return None

    @property
    def wild(self) -> str | None:
        return self._first_of_kind(SymbolKind.WILD)

    @property
    def scatter(self) -> str | None:
        return self._first_of_kind(SymbolKind.SCATTER)

    @property
    def bonus(self) -> str | None:
        return self._first_of_kind(SymbolKind.BONUS)

    def is_special(self, symbol_id: str) -> bool:
        symbol = self._by_id.get(symbol_id)
        return symbol is not None and symbol.kind != SymbolKind.STANDARD

    def high_value_ids(self) -> frozenset[str]:
        return frozenset(s.id for s in self._order if s.tier == "premium")

    def glyph(self, symbol_id: str) -> str:
        symbol = self._by_id.get(symbol_id)
        return symbol.glyph if symbol else symbol_id


default_symbol_table = SymbolTable()
