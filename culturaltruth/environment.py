"""
Environment Configuration — Hackathon vs Production

An EnvironmentConfig is an immutable value. It is passed explicitly into
the detector, the scorer, and every Qloo call. The only mutable piece is
the EnvironmentHolder, which swaps the active reference in one assignment
so an in-flight analysis never sees a half-updated configuration.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Mapping, Optional

from culturaltruth.errors import ValidationError
from culturaltruth.types import DETECTION_LEVELS

MODES = ("Hackathon", "Production")


@dataclass(frozen=True)
class Thresholds:
    """Ascending overall-score cutoffs. Below `critical` is critical risk."""
    critical: float
    high: float
    medium: float

    def __post_init__(self):
        if not (self.critical <= self.high <= self.medium):
            raise ValidationError(
                "Thresholds must satisfy critical <= high <= medium, got "
                f"{self.critical}/{self.high}/{self.medium}"
            )


@dataclass(frozen=True)
class Features:
    demographics: bool = False
    trends: bool = True
    geospatial: bool = False
    batch: bool = True
    realtime_signals: bool = True


# Accept the tool-surface spelling as well as our own
_FEATURE_ALIASES = {
    "demographics": "demographics",
    "demographicAnalysis": "demographics",
    "trends": "trends",
    "culturalTrends": "trends",
    "geospatial": "geospatial",
    "geospatialInsights": "geospatial",
    "batch": "batch",
    "batchProcessing": "batch",
    "realtime_signals": "realtime_signals",
    "realtimeSignals": "realtime_signals",
}


@dataclass(frozen=True)
class EnvironmentConfig:
    mode: str
    detection_level: str
    thresholds: Thresholds
    endpoint: str
    features: Features = field(default_factory=Features)
    enable_full_potential: bool = False

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValidationError(
                f"Unknown mode '{self.mode}'. Expected one of {', '.join(MODES)}."
            )
        if self.detection_level not in DETECTION_LEVELS:
            raise ValidationError(
                f"Unknown detection level '{self.detection_level}'. "
                f"Expected one of {', '.join(DETECTION_LEVELS)}."
            )

    @property
    def is_production(self) -> bool:
        return self.mode == "Production"

    def to_dict(self) -> dict:
        return asdict(self)


HACKATHON_CONFIG = EnvironmentConfig(
    mode="Hackathon",
    detection_level="lenient",
    thresholds=Thresholds(critical=20, high=40, medium=60),
    endpoint="https://hackathon.api.qloo.com",
    features=Features(
        demographics=False,
        trends=True,
        geospatial=False,
        batch=True,
        realtime_signals=True,
    ),
    enable_full_potential=False,
)

PRODUCTION_CONFIG = EnvironmentConfig(
    mode="Production",
    detection_level="strict",
    thresholds=Thresholds(critical=10, high=25, medium=50),
    endpoint="https://api.qloo.com",
    features=Features(
        demographics=True,
        trends=True,
        geospatial=True,
        batch=True,
        realtime_signals=True,
    ),
    enable_full_potential=True,
)


def preset(mode: str) -> EnvironmentConfig:
    """Default configuration for a mode."""
    if mode == "Production":
        return PRODUCTION_CONFIG
    if mode == "Hackathon":
        return HACKATHON_CONFIG
    raise ValidationError(
        f"Unknown mode '{mode}'. Expected one of {', '.join(MODES)}."
    )


def build_environment(
    mode: str,
    detection_level: Optional[str] = None,
    enabled_features: Optional[Mapping[str, bool]] = None,
    enable_full_potential: Optional[bool] = None,
) -> EnvironmentConfig:
    """
    Start from the mode preset and apply overrides.

    Feature overrides are merged into the preset's features, so passing
    {"geospatial": True} leaves the other flags at their preset values.
    """
    config = preset(mode)

    if detection_level is not None:
        config = replace(config, detection_level=detection_level)

    if enable_full_potential is not None:
        config = replace(config, enable_full_potential=bool(enable_full_potential))

    if enabled_features:
        overrides = {}
        for key, value in enabled_features.items():
            name = _FEATURE_ALIASES.get(key)
            if name is None:
                raise ValidationError(f"Unknown feature '{key}'.")
            if not isinstance(value, bool):
                raise ValidationError(f"Feature '{key}' must be a boolean.")
            overrides[name] = value
        config = replace(config, features=replace(config.features, **overrides))

    return config


class EnvironmentHolder:
    """Holds the single active configuration."""

    def __init__(self, initial: EnvironmentConfig = HACKATHON_CONFIG):
        self._current = initial

    @property
    def current(self) -> EnvironmentConfig:
        return self._current

    def swap(self, config: EnvironmentConfig) -> EnvironmentConfig:
        """Replace the active configuration. Returns the previous one."""
        if not isinstance(config, EnvironmentConfig):
            raise ValidationError("Environment must be an EnvironmentConfig.")
        previous, self._current = self._current, config
        return previous
