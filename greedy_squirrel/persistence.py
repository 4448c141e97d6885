"""Versioned save record: capture, migrate, repair and restore.

Save record layout (schemaVersion 3):
{
    "schemaVersion": 3,
    "credits": 1000, "currentBet": 10, "currentBetIndex": 0,
    "progression": {"levelSystem", "achievements", "dailyChallenges", "statistics"},
    "features": {"freeSpins", "bonusGame", "cascadeEnabled", "turboMode",
                 "autoplaySettings", "gamble"},
    "spinHistory": {"entries": []},
    "autoCollectEnabled": false,
    "timestamp": 0
}
"""
import copy
import json
import logging
import math
import time
from numbers import Real
from typing import TYPE_CHECKING, Any, Callable, Protocol

from pydantic import BaseModel, Field, ValidationError

from greedy_squirrel.config import Settings, settings
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.features.autoplay import AutoplaySettings
from greedy_squirrel.progression.statistics import AllTimeStats

if TYPE_CHECKING:
    from greedy_squirrel.context import GameContext


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3


class ProgressionSection(BaseModel):
    levelSystem: dict[str, Any] | None = None
    achievements: dict[str, Any] | None = None
    dailyChallenges: dict[str, Any] | None = None
    statistics: dict[str, Any] | None = None


class FeatureSection(BaseModel):
    freeSpins: dict[str, Any] | None = None
    bonusGame: dict[str, Any] | None = None
    cascadeEnabled: bool = False
    turboMode: dict[str, Any] = Field(default_factory=lambda: {"isActive": False})
    autoplaySettings: dict[str, Any] | None = None
    gamble: dict[str, Any] | None = None


class HistorySection(BaseModel):
    entries: list[dict[str, Any]] = Field(default_factory=list)


class SaveRecord(BaseModel):
    """Current-schema save record. Field names are the persisted names."""

    schemaVersion: int = SCHEMA_VERSION
    credits: int
    currentBet: int | float
    currentBetIndex: int = 0
    progression: ProgressionSection = Field(default_factory=ProgressionSection)
    features: FeatureSection = Field(default_factory=FeatureSection)
    spinHistory: HistorySection = Field(default_factory=HistorySection)
    autoCollectEnabled: bool = False
    timestamp: int = 0


# Defaults per schema version


def _core_defaults(config: Settings) -> dict[str, Any]:
    return {
        "credits": config.initial_credits,
        "currentBet": config.bet_options[0],
        "currentBetIndex": 0,
        "timestamp": 0,
    }


def _progression_defaults() -> dict[str, Any]:
    return {
        "levelSystem": None,
        "achievements": None,
        "dailyChallenges": None,
        "statistics": None,
    }


def default_record_v1(config: Settings) -> dict[str, Any]:
    return {
        "schemaVersion": 1,
        **_core_defaults(config),
        "progression": _progression_defaults(),
        "phase4": {
            "turboMode": {"isActive": False},
            "autoplay": {"settings": None},
            "cascade": {"enabled": False},
        },
        "phase5": {
            "spinHistory": {"entries": []},
            "autoCollectEnabled": False,
        },
    }


def default_record_v2(config: Settings) -> dict[str, Any]:
    return {
        "schemaVersion": 2,
        **_core_defaults(config),
        "progression": _progression_defaults(),
        "features": {
            "freeSpins": None,
            "cascadeEnabled": False,
            "turboMode": {"isActive": False},
            "autoplaySettings": None,
        },
        "spinHistory": {"entries": []},
        "autoCollectEnabled": False,
    }


def default_record_v3(config: Settings) -> dict[str, Any]:
    record = default_record_v2(config)
    record["schemaVersion"] = 3
    record["features"]["bonusGame"] = None
    record["features"]["gamble"] = None
    return record


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay `override` onto a copy of `base`.

    Nested dicts merge key by key. A None override never replaces a
    non-None default, so a merged record is always complete.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        elif value is None and current is not None:
            continue
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# Migrations. Each step is pure: it never mutates its input.


def _v0_to_v1(record: dict[str, Any], config: Settings) -> dict[str, Any]:
    """Flat {credits, currentBet, currentBetIndex, stats, timestamp} record."""
    migrated = {
        key: record[key]
        for key in ("credits", "currentBet", "currentBetIndex", "timestamp")
        if key in record
    }
    stats = record.get("stats")
    if isinstance(stats, dict) and stats:
        migrated["progression"] = {"statistics": stats}
    return deep_merge(default_record_v1(config), migrated)


def _v1_to_v2(record: dict[str, Any], config: Settings) -> dict[str, Any]:
    """phase4/phase5 sections become features/spinHistory/autoCollectEnabled."""
    phase4 = record.get("phase4") or {}
    phase5 = record.get("phase5") or {}
    autoplay = phase4.get("autoplay") or {}
    cascade = phase4.get("cascade") or {}

    migrated = {
        key: value
        for key, value in record.items()
        if key not in ("phase4", "phase5", "schemaVersion")
    }
    migrated["features"] = {
        "cascadeEnabled": bool(cascade.get("enabled", False)),
        "turboMode": phase4.get("turboMode"),
        "autoplaySettings": autoplay.get("settings"),
    }
    migrated["spinHistory"] = phase5.get("spinHistory")
    migrated["autoCollectEnabled"] = phase5.get("autoCollectEnabled", False)
    migrated["schemaVersion"] = 2
    return deep_merge(default_record_v2(config), migrated)


def _v2_to_v3(record: dict[str, Any], config: Settings) -> dict[str, Any]:
    """Adds features.gamble and features.bonusGame."""
    return deep_merge(default_record_v3(config), {**record, "schemaVersion": 3})


MIGRATIONS: dict[int, Callable[[dict[str, Any], Settings], dict[str, Any]]] = {
    0: _v0_to_v1,
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def detect_version(record: dict[str, Any]) -> int:
    version = record.get("schemaVersion")
    if isinstance(version, int) and not isinstance(version, bool) and version >= 0:
        return version
    if "phase4" in record or "progression" in record:
        return 1
    return 0


def migrate(record: dict[str, Any], config: Settings | None = None) -> tuple[dict[str, Any], int]:
    """Run migrations forward to SCHEMA_VERSION. Returns (record, stored version)."""
    config = config or settings
    stored = detect_version(record)
    if stored > SCHEMA_VERSION:
        logger.warning(
            "Save schema %d is newer than supported %d; reading as current",
            stored,
            SCHEMA_VERSION,
        )
        return deep_merge(default_record_v3(config), {**record, "schemaVersion": SCHEMA_VERSION}), stored

    current = record
    version = stored
    while version < SCHEMA_VERSION:
        current = MIGRATIONS[version](current, config)
        version += 1
        logger.debug("Migrated save record to schema %d", version)

    if stored == SCHEMA_VERSION:
        current = deep_merge(default_record_v3(config), current)
    return current, stored


# Repair


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def repair(record: dict[str, Any], config: Settings | None = None) -> tuple[dict[str, Any], list[str]]:
    """
    Clamp and replace invalid values in a current-schema record.

    Returns the repaired copy and the list of fields that were changed.
    """
    config = config or settings
    fixed = copy.deepcopy(record)
    changes: list[str] = []
    options = list(config.bet_options)

    credits = fixed.get("credits")
    if not _is_number(credits):
        fixed["credits"] = config.initial_credits
        changes.append("credits")
    elif credits < 0 or credits != math.floor(credits):
        fixed["credits"] = max(0, math.floor(credits))
        changes.append("credits")

    bet = fixed.get("currentBet")
    index = fixed.get("currentBetIndex")
    index_valid = isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(options)
    if _is_number(bet) and bet in options:
        if not index_valid or options[index] != bet:
            fixed["currentBetIndex"] = options.index(bet)
            changes.append("currentBetIndex")
    elif index_valid:
        fixed["currentBet"] = options[index]
        changes.append("currentBet")
    else:
        fixed["currentBet"] = options[0]
        fixed["currentBetIndex"] = 0
        changes.extend(["currentBet", "currentBetIndex"])

    if not _is_number(fixed.get("timestamp")):
        fixed["timestamp"] = 0
        changes.append("timestamp")
    else:
        fixed["timestamp"] = int(fixed["timestamp"])

    if not isinstance(fixed.get("autoCollectEnabled"), bool):
        fixed["autoCollectEnabled"] = False
        changes.append("autoCollectEnabled")

    features = fixed.get("features")
    if not isinstance(features, dict):
        features = fixed["features"] = default_record_v3(config)["features"]
        changes.append("features")
    if not isinstance(features.get("cascadeEnabled"), bool):
        features["cascadeEnabled"] = False
        changes.append("features.cascadeEnabled")

    free_spins = features.get("freeSpins")
    if free_spins is not None and not (
        isinstance(free_spins, dict)
        and _is_number(free_spins.get("remainingSpins"))
        and free_spins["remainingSpins"] >= 0
    ):
        features["freeSpins"] = None
        changes.append("features.freeSpins")

    gamble = features.get("gamble")
    if gamble is not None and not (
        isinstance(gamble, dict) and _is_number(gamble.get("amount")) and gamble["amount"] >= 0
    ):
        features["gamble"] = None
        changes.append("features.gamble")

    progression = fixed.get("progression")
    if isinstance(progression, dict) and isinstance(progression.get("statistics"), dict):
        stats = progression["statistics"]
        for name in AllTimeStats.model_fields:
            if name in stats and not _is_number(stats[name]):
                del stats[name]
                changes.append(f"progression.statistics.{name}")

    return fixed, changes


# Stores


class SaveStore(Protocol):
    """Key/value backend for encoded save records."""

    async def read(self, key: str) -> str | None:
        ...

    async def write(self, key: str, payload: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemorySaveStore:
    """In-process store (tests, simulation, headless sessions)."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def read(self, key: str) -> str | None:
        return self.data.get(key)

    async def write(self, key: str, payload: str) -> None:
        self.data[key] = payload

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


# Codec


class PersistenceCodec:
    """Moves a GameContext to and from a versioned save record."""

    def __init__(
        self,
        store: SaveStore | None = None,
        key: str | None = None,
        config: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or settings
        self.store = store if store is not None else MemorySaveStore()
        self.key = key or self.config.save_key
        self.clock = clock

    def default_record(self) -> SaveRecord:
        return SaveRecord.model_validate(default_record_v3(self.config))

    def capture(self, context: "GameContext") -> SaveRecord:
        state = context.state
        return SaveRecord(
            schemaVersion=SCHEMA_VERSION,
            credits=state.credits,
            currentBet=state.current_bet,
            currentBetIndex=state.current_bet_index,
            progression=ProgressionSection(
                levelSystem=context.levels.get_save_data() if context.levels else None,
                achievements=context.achievements.get_save_data(),
                dailyChallenges=context.challenges.get_save_data(),
                statistics=context.statistics.get_save_data(),
            ),
            features=FeatureSection(
                freeSpins=context.free_spins.get_save_data(),
                bonusGame=context.bonus.get_save_data(),
                cascadeEnabled=context.cascade.enabled,
                turboMode=context.turbo.get_save_data(),
                autoplaySettings=context.autoplay_settings.model_dump(),
                gamble=context.gamble.get_save_data(),
            ),
            spinHistory=HistorySection(**context.history.get_save_data()),
            autoCollectEnabled=context.auto_collect_enabled,
            timestamp=int(self.clock() * 1000),
        )

    def encode(self, record: SaveRecord) -> str:
        return record.model_dump_json()

    def decode(self, raw: str | bytes | None) -> tuple[SaveRecord, bool]:
        """
        Parse, migrate and repair a stored payload.

        Returns (record, needs_rewrite). needs_rewrite is set when the
        stored schema was stale or any field had to be repaired.
        Raises PERSISTENCE_ERROR for payloads that are not a JSON object.
        """
        if raw is None:
            return self.default_record(), False
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise GameError(ErrorCode.PERSISTENCE_ERROR, f"Save payload is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise GameError(
                ErrorCode.PERSISTENCE_ERROR,
                f"Save payload must be an object, got {type(data).__name__}",
            )

        migrated, stored_version = migrate(data, self.config)
        repaired, changes = repair(migrated, self.config)
        if changes:
            logger.warning("Repaired save fields: %s", ", ".join(changes))

        try:
            record = SaveRecord.model_validate(repaired)
        except ValidationError as e:
            raise GameError(ErrorCode.PERSISTENCE_ERROR, f"Invalid save record: {e}") from e
        return record, stored_version < SCHEMA_VERSION or bool(changes)

    def apply(self, record: SaveRecord, context: "GameContext") -> float:
        """
        Restore every component from a record.

        A gamble that was pending when the record was written cannot be
        resumed; its amount is credited back. Returns that amount.
        """
        context.state.batch_update(
            credits=record.credits,
            current_bet=record.currentBet,
            current_bet_index=record.currentBetIndex,
            last_win=0,
            is_spinning=False,
        )

        progression = record.progression
        if context.levels is not None:
            context.levels.init(progression.levelSystem)
        context.achievements.init(progression.achievements)
        context.challenges.init(progression.dailyChallenges)
        context.statistics.init(progression.statistics)

        features = record.features
        context.free_spins.init(features.freeSpins)
        context.bonus.init(features.bonusGame)
        context.cascade.init({"enabled": features.cascadeEnabled})
        context.turbo.init(features.turboMode)
        context.autoplay_settings = AutoplaySettings.model_validate(
            features.autoplaySettings or {}
        )
        context.history.init(record.spinHistory.model_dump())
        context.auto_collect_enabled = record.autoCollectEnabled

        refund = context.gamble.init(features.gamble)
        if refund > 0:
            context.state.add_credits(refund)
            logger.info("Credited back pending gamble amount %s", refund)
        return refund

    async def save(self, context: "GameContext") -> SaveRecord:
        record = self.capture(context)
        try:
            await self.store.write(self.key, self.encode(record))
        except GameError:
            raise
        except Exception as e:
            raise GameError(ErrorCode.PERSISTENCE_ERROR, f"Save failed: {e}") from e
        logger.debug("Saved game state to %s", self.key)
        return record

    async def load(self, context: "GameContext") -> SaveRecord:
        """Read, upgrade and apply the stored record. Rewrites it when stale or repaired."""
        try:
            raw = await self.store.read(self.key)
        except Exception as e:
            raise GameError(ErrorCode.PERSISTENCE_ERROR, f"Load failed: {e}") from e

        try:
            record, needs_rewrite = self.decode(raw)
        except GameError as e:
            logger.warning("Discarding unreadable save %s: %s", self.key, e.message)
            record, needs_rewrite = self.default_record(), True

        refund = self.apply(record, context)
        logger.info(
            "Loaded game state from %s (credits=%d, rewrite=%s)",
            self.key,
            context.state.credits,
            needs_rewrite,
        )
        if needs_rewrite or refund > 0:
            return await self.save(context)
        return record

    async def clear(self) -> None:
        await self.store.delete(self.key)
        logger.info("Cleared saved game state %s", self.key)
