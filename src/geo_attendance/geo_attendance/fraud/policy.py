from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..core.constants import (
    DEFAULT_HIGH_SPEED_KMH,
    DEFAULT_MEDIUM_SPEED_KMH,
    DEFAULT_PATTERN_HIGH_THRESHOLD,
    DEFAULT_PATTERN_THRESHOLD,
    DEFAULT_PATTERN_WINDOW_DAYS,
    DEFAULT_REPEATED_LOCATION_THRESHOLD,
    DEFAULT_TIME_DEVIATION_MINUTES,
)
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class FraudPolicy:
    """Fraud thresholds, injected so they can be tuned per deployment.

    Travel speed between two events:
    - speed > high_speed_kmh: high risk, record flagged
    - medium_speed_kmh <= speed <= high_speed_kmh: medium risk, audit log only

    Repeated behaviour over the last `pattern_window_days` days:
    - pattern_threshold or more suspicious days: medium risk pattern
    - pattern_high_threshold or more: high risk pattern
    """

    high_speed_kmh: float = DEFAULT_HIGH_SPEED_KMH
    medium_speed_kmh: float = DEFAULT_MEDIUM_SPEED_KMH
    pattern_window_days: int = DEFAULT_PATTERN_WINDOW_DAYS
    pattern_threshold: int = DEFAULT_PATTERN_THRESHOLD
    pattern_high_threshold: int = DEFAULT_PATTERN_HIGH_THRESHOLD
    repeated_location_threshold: int = DEFAULT_REPEATED_LOCATION_THRESHOLD
    time_deviation_minutes: float = DEFAULT_TIME_DEVIATION_MINUTES

    def __post_init__(self) -> None:
        if self.medium_speed_kmh <= 0 or self.high_speed_kmh <= 0:
            raise ValidationError("Speed thresholds must be positive")
        if self.medium_speed_kmh > self.high_speed_kmh:
            raise ValidationError("Medium speed threshold cannot exceed the high threshold")
        if self.pattern_window_days <= 0 or self.pattern_threshold <= 0 or self.repeated_location_threshold <= 0:
            raise ValidationError("Pattern window and thresholds must be positive")
        if self.pattern_threshold > self.pattern_high_threshold:
            raise ValidationError("Pattern threshold cannot exceed the high pattern threshold")
        if self.time_deviation_minutes <= 0:
            raise ValidationError("Time deviation must be positive")

    @classmethod
    def from_settings(cls, settings: Any) -> "FraudPolicy":
        return cls(
            high_speed_kmh=float(getattr(settings, "FRAUD_HIGH_SPEED_KMH", DEFAULT_HIGH_SPEED_KMH)),
            medium_speed_kmh=float(getattr(settings, "FRAUD_MEDIUM_SPEED_KMH", DEFAULT_MEDIUM_SPEED_KMH)),
            pattern_window_days=int(getattr(settings, "FRAUD_PATTERN_WINDOW_DAYS", DEFAULT_PATTERN_WINDOW_DAYS)),
            pattern_threshold=int(getattr(settings, "FRAUD_PATTERN_THRESHOLD", DEFAULT_PATTERN_THRESHOLD)),
            pattern_high_threshold=int(
                getattr(settings, "FRAUD_PATTERN_HIGH_THRESHOLD", DEFAULT_PATTERN_HIGH_THRESHOLD)
            ),
            repeated_location_threshold=int(
                getattr(settings, "FRAUD_REPEATED_LOCATION_THRESHOLD", DEFAULT_REPEATED_LOCATION_THRESHOLD)
            ),
            time_deviation_minutes=float(
                getattr(settings, "FRAUD_TIME_DEVIATION_MINUTES", DEFAULT_TIME_DEVIATION_MINUTES)
            ),
        )
