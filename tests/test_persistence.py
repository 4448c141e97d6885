"""Tests for save records: migrations, repair, codec and stores."""
import json
import math

import pytest

from greedy_squirrel.capabilities import InstantTimers
from greedy_squirrel.config import Settings
from greedy_squirrel.context import GameContext, build_context
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.persistence import (
    SCHEMA_VERSION,
    MemorySaveStore,
    PersistenceCodec,
    deep_merge,
    detect_version,
    migrate,
    repair,
)
from greedy_squirrel.redis_service import RedisSaveStore
from greedy_squirrel.telemetry import TelemetryService
from tests.conftest import MockRedis, RecordingSink, ScriptedRNG


def fresh_context(config: Settings) -> GameContext:
    return build_context(
        config,
        rng=ScriptedRNG(),
        timers=InstantTimers(),
        telemetry=TelemetryService(RecordingSink()),
        with_levels=True,
    )


V0_RECORD = {
    "credits": 500,
    "currentBet": 20,
    "currentBetIndex": 1,
    "stats": {"totalSpins": 7, "totalWon": 90},
    "timestamp": 1700000000000,
}

V1_RECORD = {
    "schemaVersion": 1,
    "credits": 2500,
    "currentBet": 50,
    "currentBetIndex": 2,
    "progression": {
        "levelSystem": {"xp": 300, "unlockedFeatures": ["autoplay"]},
        "achievements": None,
        "dailyChallenges": None,
        "statistics": {"totalSpins": 40},
    },
    "phase4": {
        "turboMode": {"isActive": True},
        "autoplay": {"settings": {"stopOnWin": True}},
        "cascade": {"enabled": True},
    },
    "phase5": {
        "spinHistory": {"entries": []},
        "autoCollectEnabled": True,
    },
    "timestamp": 1700000000000,
}

V2_RECORD = {
    "schemaVersion": 2,
    "credits": 800,
    "currentBet": 10,
    "currentBetIndex": 0,
    "progression": {},
    "features": {
        "freeSpins": {"active": True, "remainingSpins": 4, "totalSpins": 10, "multiplier": 3},
        "cascadeEnabled": False,
        "turboMode": {"isActive": False},
        "autoplaySettings": None,
    },
    "spinHistory": {"entries": []},
    "autoCollectEnabled": False,
    "timestamp": 1700000000000,
}


class TestMigrations:
    """Each stored schema upgrades to the current one without losing defined fields."""

    def test_detect_version(self):
        assert detect_version(V0_RECORD) == 0
        assert detect_version({"phase4": {}}) == 1
        assert detect_version(V2_RECORD) == 2

    def test_v0_flat_record(self, codec: PersistenceCodec):
        record, needs_rewrite = codec.decode(json.dumps(V0_RECORD))

        assert needs_rewrite
        assert record.schemaVersion == SCHEMA_VERSION
        assert record.credits == 500
        assert record.currentBet == 20
        assert record.currentBetIndex == 1
        assert record.progression.statistics["totalSpins"] == 7
        assert record.features.gamble is None

    def test_v1_phase_sections(self, codec: PersistenceCodec):
        record, needs_rewrite = codec.decode(json.dumps(V1_RECORD))

        assert needs_rewrite
        assert record.credits == 2500
        assert record.currentBet == 50
        assert record.features.cascadeEnabled is True
        assert record.features.turboMode == {"isActive": True}
        assert record.features.autoplaySettings == {"stopOnWin": True}
        assert record.autoCollectEnabled is True
        assert record.progression.levelSystem["xp"] == 300

    def test_v2_gains_gamble_and_bonus(self, codec: PersistenceCodec):
        record, needs_rewrite = codec.decode(json.dumps(V2_RECORD))

        assert needs_rewrite
        assert record.features.freeSpins["remainingSpins"] == 4
        assert record.features.gamble is None
        assert record.features.bonusGame is None

    def test_migrations_are_pure(self, config: Settings):
        original = json.loads(json.dumps(V1_RECORD))
        migrate(original, config)
        assert original == V1_RECORD

    def test_newer_schema_read_as_current(self, codec: PersistenceCodec):
        record, needs_rewrite = codec.decode(
            json.dumps({"schemaVersion": 9, "credits": 100, "currentBet": 10})
        )
        assert record.schemaVersion == SCHEMA_VERSION
        assert record.credits == 100
        assert not needs_rewrite

    def test_deep_merge_none_keeps_default(self):
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        merged = deep_merge(base, {"a": {"b": None, "c": 5}, "e": 4})
        assert merged == {"a": {"b": 1, "c": 5}, "d": 3, "e": 4}
        assert base == {"a": {"b": 1, "c": 2}, "d": 3}


class TestRepair:
    """Invalid values are clamped or replaced, never passed through."""

    @pytest.mark.parametrize(
        "credits,expected",
        [(-5, 0), (10.7, 10), (math.nan, 1000), (math.inf, 1000), ("abc", 1000)],
    )
    def test_credits(self, config: Settings, credits, expected):
        fixed, changes = repair({"credits": credits, "currentBet": 10, "currentBetIndex": 0}, config)
        assert fixed["credits"] == expected
        assert "credits" in changes

    def test_unknown_bet_follows_valid_index(self, config: Settings):
        fixed, _ = repair({"credits": 100, "currentBet": 15, "currentBetIndex": 2}, config)
        assert fixed["currentBet"] == 50
        assert fixed["currentBetIndex"] == 2

    def test_unknown_bet_and_index_reset(self, config: Settings):
        fixed, _ = repair({"credits": 100, "currentBet": 15, "currentBetIndex": 99}, config)
        assert fixed["currentBet"] == 10
        assert fixed["currentBetIndex"] == 0

    def test_index_follows_valid_bet(self, config: Settings):
        fixed, changes = repair({"credits": 100, "currentBet": 20, "currentBetIndex": 0}, config)
        assert fixed["currentBetIndex"] == 1
        assert "currentBetIndex" in changes
        assert "currentBet" not in changes

    def test_invalid_feature_sections_dropped(self, config: Settings):
        record = {
            "credits": 100,
            "currentBet": 10,
            "currentBetIndex": 0,
            "timestamp": 0,
            "autoCollectEnabled": False,
            "features": {
                "cascadeEnabled": "yes",
                "freeSpins": {"active": True, "remainingSpins": -1},
                "gamble": {"amount": "lots"},
            },
        }
        fixed, changes = repair(record, config)
        assert fixed["features"]["cascadeEnabled"] is False
        assert fixed["features"]["freeSpins"] is None
        assert fixed["features"]["gamble"] is None
        assert len(changes) == 3

    def test_non_numeric_statistics_removed(self, config: Settings):
        record = {
            "credits": 100,
            "currentBet": 10,
            "progression": {"statistics": {"totalSpins": "many", "totalWon": 5}},
        }
        fixed, changes = repair(record, config)
        assert fixed["progression"]["statistics"] == {"totalWon": 5}
        assert "progression.statistics.totalSpins" in changes


class TestDecode:
    """Tests for parsing stored payloads."""

    def test_absent_payload_gives_defaults(self, codec: PersistenceCodec):
        record, needs_rewrite = codec.decode(None)
        assert record.credits == 1000
        assert not needs_rewrite

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_unreadable_payload(self, codec: PersistenceCodec, raw):
        with pytest.raises(GameError) as exc_info:
            codec.decode(raw)
        assert exc_info.value.code == ErrorCode.PERSISTENCE_ERROR

    def test_save_always_writes_current_schema(self, codec: PersistenceCodec, context: GameContext):
        record = codec.capture(context)
        payload = json.loads(codec.encode(record))
        assert payload["schemaVersion"] == SCHEMA_VERSION
        assert set(payload["features"]) == {
            "freeSpins", "bonusGame", "cascadeEnabled", "turboMode", "autoplaySettings", "gamble",
        }


class TestCodecRoundTrip:
    """save then load restores the game."""

    @pytest.mark.asyncio
    async def test_round_trip(self, config: Settings, codec: PersistenceCodec, save_store: MemorySaveStore):
        ctx = fresh_context(config)
        ctx.state.set_current_bet(20)
        ctx.state.set_credits(4321)
        ctx.cascade.enabled = True
        ctx.turbo.active = True
        ctx.auto_collect_enabled = True
        ctx.autoplay_settings.stopOnWin = True
        ctx.levels.award_xp("bonus")
        ctx.statistics.record_spin(20, 100, True)
        ctx.history.record(20, 100, ["scatter"])
        ctx.challenges.generate()
        ctx.free_spins.init({"active": True, "remainingSpins": 3, "totalSpins": 10, "multiplier": 2})
        await codec.save(ctx)

        restored = fresh_context(config)
        await codec.load(restored)

        assert restored.state.credits == 4321
        assert restored.state.current_bet == 20
        assert restored.state.current_bet_index == 1
        assert restored.cascade.enabled
        assert restored.turbo.active
        assert restored.auto_collect_enabled
        assert restored.autoplay_settings.stopOnWin
        assert restored.levels.xp == ctx.levels.xp
        assert restored.statistics.all_time.totalSpins == 1
        assert restored.history.entries == ctx.history.entries
        assert restored.free_spins.state == ctx.free_spins.state
        assert restored.challenges.challenges == ctx.challenges.challenges

    @pytest.mark.asyncio
    async def test_load_without_save_uses_defaults(
        self, config: Settings, codec: PersistenceCodec, save_store: MemorySaveStore
    ):
        ctx = fresh_context(config)
        await codec.load(ctx)
        assert ctx.state.credits == 1000
        assert save_store.data == {}

    @pytest.mark.asyncio
    async def test_corrupt_save_replaced_with_defaults(
        self, config: Settings, codec: PersistenceCodec, save_store: MemorySaveStore
    ):
        save_store.data["test-save"] = "{not json"
        ctx = fresh_context(config)

        await codec.load(ctx)

        assert ctx.state.credits == 1000
        assert json.loads(save_store.data["test-save"])["schemaVersion"] == SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_stale_schema_rewritten(
        self, config: Settings, codec: PersistenceCodec, save_store: MemorySaveStore
    ):
        save_store.data["test-save"] = json.dumps(V1_RECORD)
        ctx = fresh_context(config)

        await codec.load(ctx)

        stored = json.loads(save_store.data["test-save"])
        assert stored["schemaVersion"] == SCHEMA_VERSION
        assert "phase4" not in stored
        assert ctx.state.credits == 2500
        assert ctx.levels.is_feature_unlocked("autoplay")

    @pytest.mark.asyncio
    async def test_pending_gamble_credited_back(
        self, config: Settings, codec: PersistenceCodec, save_store: MemorySaveStore
    ):
        record = codec.default_record().model_dump()
        record["credits"] = 500
        record["features"]["gamble"] = {
            "phase": "active", "amount": 200, "originalAmount": 100, "attemptsRemaining": 4,
        }
        save_store.data["test-save"] = json.dumps(record)
        ctx = fresh_context(config)

        await codec.load(ctx)

        assert ctx.state.credits == 700
        assert not ctx.gamble.is_active()
        assert json.loads(save_store.data["test-save"])["features"]["gamble"] is None

    @pytest.mark.asyncio
    async def test_clear_removes_record(self, codec: PersistenceCodec, save_store: MemorySaveStore, context):
        await codec.save(context)
        await codec.clear()
        assert save_store.data == {}

    @pytest.mark.asyncio
    async def test_store_failure_becomes_persistence_error(self, config: Settings, context: GameContext):
        class BrokenStore(MemorySaveStore):
            async def write(self, key: str, payload: str) -> None:
                raise ConnectionError("disk full")

        codec = PersistenceCodec(BrokenStore(), config=config)
        with pytest.raises(GameError) as exc_info:
            await codec.save(context)
        assert exc_info.value.code == ErrorCode.PERSISTENCE_ERROR


class TestRedisSaveStore:
    """Tests for the Redis-backed store."""

    @pytest.mark.asyncio
    async def test_save_and_load_through_redis(self, config: Settings, mock_redis: MockRedis):
        store = RedisSaveStore(redis_url="redis://test", ttl_seconds=60)
        store._client = mock_redis
        codec = PersistenceCodec(store, key="player-1", config=config)

        ctx = fresh_context(config)
        ctx.state.set_credits(2222)
        await codec.save(ctx)

        assert "save:player-1" in mock_redis._store
        assert mock_redis._last_ttl == 60

        restored = fresh_context(config)
        await codec.load(restored)
        assert restored.state.credits == 2222

        await codec.clear()
        assert mock_redis._store == {}

    @pytest.mark.asyncio
    async def test_missing_key_reads_none(self, mock_redis: MockRedis):
        store = RedisSaveStore(redis_url="redis://test")
        store._client = mock_redis
        assert await store.read("nobody") is None

    def test_client_requires_connection(self):
        store = RedisSaveStore(redis_url="redis://test")
        with pytest.raises(RuntimeError):
            _ = store.client

    @pytest.mark.asyncio
    async def test_close_drops_client(self, mock_redis: MockRedis):
        store = RedisSaveStore(redis_url="redis://test")
        store._client = mock_redis
        await store.close()
        assert store._client is None
