"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RiskTier(str, Enum):
    """Ordered GLOF severity tiers.

    ``UNKNOWN`` is only produced by the statistical scorer when the reading
    window is too small to say anything.
    """

    UNKNOWN = "UNKNOWN"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def is_alerting(self) -> bool:
        return self in (RiskTier.HIGH, RiskTier.CRITICAL)


_SEVERITY = {
    RiskTier.UNKNOWN: -1,
    RiskTier.LOW: 0,
    RiskTier.MEDIUM: 1,
    RiskTier.HIGH: 2,
    RiskTier.CRITICAL: 3,
}


class TrendDirection(str, Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"
    unknown = "unknown"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single sample reported by a glacier-lake monitoring node."""

    node_id: str
    temperature: float
    seismic_activity: float
    water_level: float
    timestamp: datetime
    battery: Optional[float] = None
    signal_strength: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Thresholds:
    """Rule-engine trigger levels; replaced wholesale on update."""

    temperature: float = 10.0
    seismic: float = 0.5
    water_level_increase_pct: float = 20.0
