"""Threshold rules that turn the latest reading into a risk tier."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from app.schemas import AssessmentMetrics, RiskAssessment
from models.records import RiskTier, SensorReading, Thresholds
from storage.history import HistoryStore

logger = logging.getLogger(__name__)

TEMPERATURE_POINTS = 30
SEISMIC_POINTS = 35
WATER_TREND_POINTS = 35
COMBINED_BONUS_POINTS = 40

# Readings are expected roughly once a minute, so 60 positions back stands in
# for "one hour ago". The offset is positional, not time based.
LOOKBACK_READINGS = 60

_TIER_CUTOFFS = (
    (70, RiskTier.CRITICAL),
    (40, RiskTier.HIGH),
    (20, RiskTier.MEDIUM),
)

_ALERT_TEMPLATES = {
    RiskTier.CRITICAL: "CRITICAL GLOF ALERT at {node_id}! Immediate evacuation recommended. {factors}",
    RiskTier.HIGH: "HIGH RISK detected at {node_id}. Prepare for potential evacuation. {factors}",
    RiskTier.MEDIUM: "MEDIUM RISK at {node_id}. Monitor situation closely. {factors}",
    RiskTier.LOW: "Normal conditions at {node_id}",
}


@dataclass(frozen=True)
class WaterLevelTrend:
    is_rapid_increase: bool
    percentage_increase: float


def tier_for_score(score: float) -> RiskTier:
    for cutoff, tier in _TIER_CUTOFFS:
        if score >= cutoff:
            return tier
    return RiskTier.LOW


def build_alert_message(tier: RiskTier, node_id: str, factors: Sequence[str]) -> str:
    template = _ALERT_TEMPLATES.get(tier, _ALERT_TEMPLATES[RiskTier.LOW])
    return template.format(node_id=node_id, factors=". ".join(factors)).rstrip()


class RuleEngine:
    """Scores readings against the configured thresholds.

    Evaluating a reading also records it in the node's history, since the
    water-level rule compares against earlier readings of the same node.
    """

    def __init__(self, history: HistoryStore, thresholds: Optional[Thresholds] = None) -> None:
        self.history = history
        self._thresholds = thresholds or Thresholds()

    @property
    def thresholds(self) -> Thresholds:
        return self._thresholds

    def update_thresholds(
        self,
        temperature: Optional[float] = None,
        seismic: Optional[float] = None,
        water_level_increase_pct: Optional[float] = None,
    ) -> Thresholds:
        changes = {
            name: value
            for name, value in (
                ("temperature", temperature),
                ("seismic", seismic),
                ("water_level_increase_pct", water_level_increase_pct),
            )
            if value is not None
        }
        updated = replace(self._thresholds, **changes)
        self._thresholds = updated
        logger.info("Rule thresholds updated", extra={"status": str(updated)})
        return updated

    def evaluate(self, reading: SensorReading, thresholds: Optional[Thresholds] = None) -> RiskAssessment:
        limits = thresholds or self._thresholds
        history = self.history.append_and_get(reading.node_id, reading)

        factors: list[str] = []
        score = 0

        hot = reading.temperature > limits.temperature
        if hot:
            factors.append(
                f"High temperature: {reading.temperature}°C (threshold: {limits.temperature}°C)"
            )
            score += TEMPERATURE_POINTS

        shaking = reading.seismic_activity > limits.seismic
        if shaking:
            factors.append(
                f"Elevated seismic activity: {reading.seismic_activity} (threshold: {limits.seismic})"
            )
            score += SEISMIC_POINTS

        trend = self.analyze_water_level_trend(
            history, reading.water_level, limits.water_level_increase_pct
        )
        if trend.is_rapid_increase:
            factors.append(
                f"Rapid water level increase: {trend.percentage_increase:.1f}% in 1 hour"
            )
            score += WATER_TREND_POINTS

        if hot and shaking and trend.is_rapid_increase:
            factors.append("COMBINED RISK: All indicators showing dangerous levels")
            score += COMBINED_BONUS_POINTS

        tier = tier_for_score(score)
        assessment = RiskAssessment(
            node_id=reading.node_id,
            timestamp=reading.timestamp,
            risk_tier=tier,
            risk_score=score,
            risk_factors=factors,
            metrics=AssessmentMetrics(
                temperature=reading.temperature,
                seismic_activity=reading.seismic_activity,
                water_level=reading.water_level,
                water_level_trend=trend.percentage_increase,
            ),
            should_alert=tier.is_alerting,
            alert_message=build_alert_message(tier, reading.node_id, factors),
        )
        logger.debug(
            "Reading evaluated",
            extra={"node_id": reading.node_id, "risk_tier": tier, "risk_score": score},
        )
        return assessment

    def analyze_water_level_trend(
        self,
        history: Sequence[SensorReading],
        current_level: float,
        threshold_pct: Optional[float] = None,
    ) -> WaterLevelTrend:
        """Compare ``current_level`` with the reading one lookback window back.

        ``history`` is most-recent-last and already contains the current
        reading, so position 1 from the end is the current reading itself.
        """
        if len(history) < 2:
            return WaterLevelTrend(is_rapid_increase=False, percentage_increase=0.0)

        lookback = min(LOOKBACK_READINGS, len(history) - 1)
        previous_level = history[-lookback].water_level
        if previous_level == 0:
            return WaterLevelTrend(is_rapid_increase=False, percentage_increase=0.0)

        limit = self._thresholds.water_level_increase_pct if threshold_pct is None else threshold_pct
        percentage = (current_level - previous_level) / previous_level * 100
        return WaterLevelTrend(
            is_rapid_increase=percentage >= limit,
            percentage_increase=percentage,
        )

    def reset(self) -> None:
        self.history.reset()
