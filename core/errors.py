"""Exception definitions for the cook session monitor."""
import math


class CookMonitorError(Exception):
    """Base exception for all cook monitor errors."""
    pass


class ValidationError(CookMonitorError, ValueError):
    """Raised when plan inputs or thresholds are invalid."""
    pass


class StaleSampleError(CookMonitorError):
    """Raised when a sample is older than the last accepted one."""

    def __init__(self, sample_time, last_accepted):
        super().__init__(
            f"sample at {sample_time.isoformat()} is older than last accepted {last_accepted.isoformat()}"
        )
        self.sample_time = sample_time
        self.last_accepted = last_accepted


class DeliveryError(CookMonitorError):
    """Raised when the notification or persistence collaborator fails."""
    pass


class SessionClosedError(CookMonitorError):
    """Raised when a request reaches a session that has already ended."""
    pass


def validate_thresholds(wrap_temp_f: float, target_temp_f: float) -> None:
    """
    Reject threshold pairs that would make the stage order undefined

    Raises:
        ValidationError: wrap is not strictly below target
    """
    if not (math.isfinite(wrap_temp_f) and math.isfinite(target_temp_f)):
        raise ValidationError(f"thresholds must be finite, got wrap {wrap_temp_f} and target {target_temp_f}")
    if wrap_temp_f >= target_temp_f:
        raise ValidationError(
            f"wrap temperature {wrap_temp_f}°F must be below target {target_temp_f}°F"
        )
