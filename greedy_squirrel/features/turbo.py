"""Turbo mode: shorter reel spins and autoplay gaps."""
import logging
from typing import Any

from greedy_squirrel.config import TimingConfig
from greedy_squirrel.errors import ErrorCode, GameError


logger = logging.getLogger(__name__)


class TurboMode:
    name = "turbo"

    def __init__(self, timing: TimingConfig, levels: Any = None):
        self.timing = timing
        self.levels = levels
        self.active = False

    def is_active(self) -> bool:
        return self.active

    def is_unlocked(self) -> bool:
        return self.levels is None or self.levels.is_feature_unlocked("turbo")

    def toggle(self) -> bool:
        if not self.active and not self.is_unlocked():
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Turbo mode unlocks at level 10")
        self.active = not self.active
        logger.info("Turbo mode %s", "on" if self.active else "off")
        return self.active

    def reel_spin_time(self, reel_index: int) -> float:
        """Seconds until a reel stops, staggered by reel index."""
        if self.active:
            return self.timing.turbo_reel_spin_time + reel_index * self.timing.turbo_reel_stagger
        return self.timing.reel_spin_time + reel_index * self.timing.reel_stagger

    @property
    def autoplay_delay(self) -> float:
        return self.timing.turbo_autoplay_delay if self.active else self.timing.autoplay_delay

    def get_save_data(self) -> dict[str, Any]:
        return {"isActive": self.active}

    def init(self, data: dict[str, Any] | None) -> None:
        self.active = bool(data.get("isActive", False)) if data else False
