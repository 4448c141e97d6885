"""Gameplay telemetry events."""
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Log telemetry event."""
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class SpinCompletedEvent:
    """spin_completed telemetry event."""

    bet: float
    win: float
    cascade_win: float
    is_free_spin: bool
    scatter_count: int
    features: list[str] = field(default_factory=list)
    anticipation: str | None = None
    config_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "bet": self.bet,
            "win": self.win,
            "cascade_win": self.cascade_win,
            "is_free_spin": self.is_free_spin,
            "scatter_count": self.scatter_count,
            "features": list(self.features),
            "anticipation": self.anticipation,
            "config_hash": self.config_hash,
        }


@dataclass
class SpinFailedEvent:
    """spin_failed telemetry event."""

    code: str
    category: str
    is_free_spin: bool
    refunded: bool
    config_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "code": self.code,
            "category": self.category,
            "is_free_spin": self.is_free_spin,
            "refunded": self.refunded,
            "config_hash": self.config_hash,
        }


@dataclass
class FeatureTriggeredEvent:
    """feature_triggered telemetry event."""

    feature: str  # "free_spins" | "free_spins_retrigger" | "bonus" | "gamble"
    count: int
    award: float
    config_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "feature": self.feature,
            "count": self.count,
            "award": self.award,
            "config_hash": self.config_hash,
        }


@dataclass
class CascadeCappedEvent:
    """cascade_capped telemetry event, emitted when the iteration cap stops a tumble."""

    iterations: int
    total_win: float
    config_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for emission."""
        return {
            "iterations": self.iterations,
            "total_win": self.total_win,
            "config_hash": self.config_hash,
        }


class TelemetryService:
    """Service for emitting gameplay telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0  # Counter for sink failures

    @property
    def sink_errors(self) -> int:
        return self._sink_errors

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """
        Emit event with exception safety.

        Sink failures MUST NOT break a spin.
        """
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_spin_completed(self, event: SpinCompletedEvent) -> None:
        self._safe_emit("spin_completed", event.to_dict())

    def emit_spin_failed(self, event: SpinFailedEvent) -> None:
        self._safe_emit("spin_failed", event.to_dict())

    def emit_feature_triggered(self, event: FeatureTriggeredEvent) -> None:
        self._safe_emit("feature_triggered", event.to_dict())

    def emit_cascade_capped(self, event: CascadeCappedEvent) -> None:
        self._safe_emit("cascade_capped", event.to_dict())


# Global instance
telemetry_service = TelemetryService()
