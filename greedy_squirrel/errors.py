"""Error codes, categories and the top-level error handler."""
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel


logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Error codes raised by the spin pipeline."""

    INVALID_BET = "INVALID_BET"
    INVALID_GRID = "INVALID_GRID"
    INVALID_REEL = "INVALID_REEL"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    STATE_VIOLATION = "STATE_VIOLATION"
    SPIN_IN_PROGRESS = "SPIN_IN_PROGRESS"
    FEATURE_INACTIVE = "FEATURE_INACTIVE"
    FEATURE_UNAVAILABLE = "FEATURE_UNAVAILABLE"
    NO_SYMBOLS = "NO_SYMBOLS"
    INVALID_WEIGHTS = "INVALID_WEIGHTS"
    SPIN_FAILED = "SPIN_FAILED"
    FREE_SPINS_FAILED = "FREE_SPINS_FAILED"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorCategory(str, Enum):
    """Categories that decide the user-facing message."""

    VALIDATION = "VALIDATION"
    STATE = "STATE"
    FEATURE = "FEATURE"
    SPIN = "SPIN"
    FREE_SPIN = "FREE_SPIN"
    NETWORK = "NETWORK"
    UNEXPECTED = "UNEXPECTED"


ERROR_CATEGORY: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.INVALID_BET: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_GRID: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_REEL: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_AMOUNT: ErrorCategory.VALIDATION,
    ErrorCode.INSUFFICIENT_CREDITS: ErrorCategory.STATE,
    ErrorCode.STATE_VIOLATION: ErrorCategory.STATE,
    ErrorCode.SPIN_IN_PROGRESS: ErrorCategory.STATE,
    ErrorCode.FEATURE_INACTIVE: ErrorCategory.FEATURE,
    ErrorCode.FEATURE_UNAVAILABLE: ErrorCategory.FEATURE,
    ErrorCode.NO_SYMBOLS: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_WEIGHTS: ErrorCategory.VALIDATION,
    ErrorCode.SPIN_FAILED: ErrorCategory.SPIN,
    ErrorCode.FREE_SPINS_FAILED: ErrorCategory.FREE_SPIN,
    ErrorCode.PERSISTENCE_ERROR: ErrorCategory.NETWORK,
    ErrorCode.INTERNAL_ERROR: ErrorCategory.UNEXPECTED,
}

ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_BET: True,
    ErrorCode.INVALID_GRID: False,
    ErrorCode.INVALID_REEL: False,
    ErrorCode.INVALID_AMOUNT: True,
    ErrorCode.INSUFFICIENT_CREDITS: True,
    ErrorCode.STATE_VIOLATION: True,
    ErrorCode.SPIN_IN_PROGRESS: True,
    ErrorCode.FEATURE_INACTIVE: True,
    ErrorCode.FEATURE_UNAVAILABLE: True,
    ErrorCode.NO_SYMBOLS: False,
    ErrorCode.INVALID_WEIGHTS: False,
    ErrorCode.SPIN_FAILED: True,
    ErrorCode.FREE_SPINS_FAILED: True,
    ErrorCode.PERSISTENCE_ERROR: True,
    ErrorCode.INTERNAL_ERROR: False,
}

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.VALIDATION: "CHECK YOUR INPUT AND TRY AGAIN",
    ErrorCategory.STATE: "STATE OUT OF SYNC - RESTORING SAFE VALUES",
    ErrorCategory.FEATURE: "FEATURE TEMPORARILY UNAVAILABLE",
    ErrorCategory.SPIN: "SPIN FAILED - BET REFUNDED",
    ErrorCategory.FREE_SPIN: "FREE SPINS INTERRUPTED - RESUMING NORMAL PLAY",
    ErrorCategory.NETWORK: "CONNECTION ISSUE - PROGRESS SAVED LOCALLY",
    ErrorCategory.UNEXPECTED: "SOMETHING WENT WRONG - PLEASE TRY AGAIN",
}


class ErrorRecord(BaseModel):
    """Entry in the handler's diagnostic log."""

    code: str
    category: str
    message: str
    context: str
    recoverable: bool


class GameError(Exception):
    """Base game error carrying a code, category and recoverable flag."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message or f"Error: {code.value}"
        self.category = ERROR_CATEGORY[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.category, USER_MESSAGES[ErrorCategory.UNEXPECTED])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and telemetry."""
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class ErrorHandler:
    """
    Single top-level handler for pipeline failures.

    Normalizes any exception into a GameError, logs it, shows a
    category-appropriate message and runs a fallback. Fallback failures
    are logged and never replace the original error.
    """

    MAX_LOG_ENTRIES = 50

    def __init__(self, renderer: Any = None):
        self._renderer = renderer
        self._log: deque[ErrorRecord] = deque(maxlen=self.MAX_LOG_ENTRIES)

    def set_renderer(self, renderer: Any) -> None:
        self._renderer = renderer

    @property
    def error_log(self) -> list[ErrorRecord]:
        return list(self._log)

    def clear_log(self) -> None:
        self._log.clear()

    @staticmethod
    def normalize(
        exc: BaseException, default_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    ) -> GameError:
        """Wrap a raw exception in a GameError, keeping typed errors as they are."""
        if isinstance(exc, GameError):
            return exc
        error = GameError(default_code, str(exc) or type(exc).__name__)
        error.__cause__ = exc
        return error

    async def handle(
        self,
        exc: BaseException,
        *,
        context: str,
        default_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        user_message: str | None = None,
        fallback: Callable[[], Awaitable[None]] | None = None,
    ) -> GameError:
        """Log, notify and recover from a pipeline failure."""
        error = self.normalize(exc, default_code)
        self._log.append(
            ErrorRecord(
                code=error.code.value,
                category=error.category.value,
                message=error.message,
                context=context,
                recoverable=error.recoverable,
            )
        )
        logger.error(
            "%s failed [%s/%s]: %s",
            context,
            error.category.value,
            error.code.value,
            error.message,
            exc_info=exc,
        )

        if self._renderer is not None:
            try:
                await self._renderer.show_message(user_message or error.user_message)
            except Exception as display_error:
                logger.warning("Could not display error message: %s", display_error)

        if fallback is not None:
            try:
                await fallback()
            except Exception as fallback_error:
                logger.error(
                    "Fallback for %s failed: %s", context, fallback_error, exc_info=True
                )

        return error
