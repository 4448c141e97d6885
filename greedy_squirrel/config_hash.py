"""Config hash shared by the audit simulation and telemetry.

The hash MUST be computed identically in both locations.
"""
import hashlib
import json

from greedy_squirrel.config import Settings, settings


def get_config_hash(config: Settings | None = None) -> str:
    """
    Generate hash of the game-math configuration.

    Returns 16-char hex hash of config snapshot.
    Used for:
    - audit CSV config_hash column
    - telemetry event config_hash field
    """
    config = config or settings
    config_snapshot = {
        "reels": config.reels.model_dump(),
        "paylines": config.paylines,
        "bet_options": list(config.bet_options),
        "free_spins": config.free_spins.model_dump(),
        "bonus": config.bonus.model_dump(),
        "gamble_max_win": config.gamble.max_win_amount,
        "cascade": {
            "max_iterations": config.cascade.max_iterations,
            "multipliers": config.cascade.multipliers,
        },
    }
    canonical = json.dumps(config_snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
