"""Additive statistical risk score built from anomaly and trend signals."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Iterable, List, Sequence

from app.schemas import (
    AnomalyDetection,
    HighestRiskNode,
    InsightSummary,
    MLInsight,
    ParameterTrends,
    RiskFactor,
    TrendPrediction,
)
from models.records import RiskTier, SensorReading, TrendDirection
from services.stats import (
    MIN_READINGS,
    AnomalyResult,
    TrendResult,
    detect_anomalies,
    predict_trend,
)

logger = logging.getLogger(__name__)

ANOMALY_Z_THRESHOLD = 1.8
MAX_SCORE = 100.0

_TIER_CUTOFFS = (
    (60, RiskTier.CRITICAL),
    (40, RiskTier.HIGH),
    (20, RiskTier.MEDIUM),
)

_RECOMMENDATIONS = {
    RiskTier.CRITICAL: "IMMEDIATE ACTION REQUIRED: Evacuate downstream areas. GLOF imminent.",
    RiskTier.HIGH: "HIGH ALERT: Prepare evacuation plans. Monitor continuously.",
    RiskTier.MEDIUM: "CAUTION: Increased monitoring recommended. Alert authorities.",
    RiskTier.LOW: "Normal conditions. Continue routine monitoring.",
    RiskTier.UNKNOWN: "Insufficient data. Continue collecting readings before assessing risk.",
}


def ml_tier_for_score(score: float) -> RiskTier:
    for cutoff, tier in _TIER_CUTOFFS:
        if score >= cutoff:
            return tier
    return RiskTier.LOW


def recommendation_for(tier: RiskTier, is_anomaly: bool = False) -> str:
    if tier is RiskTier.LOW and is_anomaly:
        return _RECOMMENDATIONS[RiskTier.MEDIUM]
    return _RECOMMENDATIONS[tier]


class RiskScorer:
    """Turns a reading window into an :class:`MLInsight`.

    Each signal contributes up to its own cap; the total is clamped to 100
    only after the tier has been chosen.
    """

    def score(self, readings: Sequence[SensorReading], node_id: str) -> MLInsight:
        if len(readings) < MIN_READINGS:
            return MLInsight(
                node_id=node_id,
                data_points=len(readings),
                sufficient_data=False,
                message="Insufficient data for ML analysis",
                timestamp=readings[-1].timestamp if readings else None,
                risk_score=0.0,
                risk_tier=RiskTier.UNKNOWN,
                recommendation=recommendation_for(RiskTier.UNKNOWN),
            )

        latest = readings[-1]
        anomaly = detect_anomalies(readings, z_threshold=ANOMALY_Z_THRESHOLD)
        temp_trend = predict_trend(readings, "temperature")
        water_trend = predict_trend(readings, "water_level")
        seismic_trend = predict_trend(readings, "seismic_activity")

        factors: List[RiskFactor] = []

        if anomaly.is_anomaly:
            factors.append(
                RiskFactor(
                    name="Anomaly Detected",
                    impact=min(35.0, anomaly.confidence * 0.35),
                    description=anomaly.details,
                )
            )

        if latest.temperature > -5:
            factors.append(
                RiskFactor(
                    name="Elevated Temperature",
                    impact=min(25.0, (latest.temperature + 5) * 1.5),
                    description=f"Temperature at {latest.temperature:.1f}°C (threshold: -5°C)",
                )
            )

        if temp_trend.trend is TrendDirection.increasing and temp_trend.slope > 0.5:
            factors.append(
                RiskFactor(
                    name="Rising Temperature Trend",
                    impact=20.0,
                    description=f"Temp increasing at {temp_trend.slope:.4f}°C per reading",
                )
            )

        if latest.water_level > 280:
            factors.append(
                RiskFactor(
                    name="Elevated Water Level",
                    impact=min(25.0, (latest.water_level - 280) * 0.15),
                    description=f"Water level at {latest.water_level:.1f}cm (threshold: 280cm)",
                )
            )

        if water_trend.trend is TrendDirection.increasing and water_trend.slope > 1:
            factors.append(
                RiskFactor(
                    name="Rising Water Level",
                    impact=20.0,
                    description=f"Water level increasing at {water_trend.slope:.4f}cm per reading",
                )
            )

        if latest.seismic_activity > 0.3:
            factors.append(
                RiskFactor(
                    name="Elevated Seismic Activity",
                    impact=min(25.0, (latest.seismic_activity - 0.3) * 50),
                    description=f"Seismic activity at {latest.seismic_activity:.3f} (threshold: 0.3)",
                )
            )

        if seismic_trend.trend is TrendDirection.increasing or latest.seismic_activity > 0.5:
            factors.append(
                RiskFactor(
                    name="Increasing Seismic Trend",
                    impact=15.0,
                    description=f"Seismic trend: {seismic_trend.trend.value}",
                )
            )

        raw_score = sum(factor.impact for factor in factors)
        tier = ml_tier_for_score(raw_score)
        for factor in factors:
            factor.impact = round(factor.impact, 1)

        logger.debug(
            "ML risk computed",
            extra={"node_id": node_id, "risk_tier": tier, "risk_score": round(raw_score, 1)},
        )
        return MLInsight(
            node_id=node_id,
            data_points=len(readings),
            sufficient_data=True,
            timestamp=latest.timestamp,
            risk_score=round(min(MAX_SCORE, raw_score), 1),
            risk_tier=tier,
            factors=factors,
            anomaly_detection=_anomaly_schema(anomaly),
            trends=ParameterTrends(
                temperature=_trend_schema(temp_trend),
                water_level=_trend_schema(water_trend),
                seismic_activity=_trend_schema(seismic_trend),
            ),
            recommendation=recommendation_for(tier, anomaly.is_anomaly),
        )

    def summarize(self, insights: Iterable[MLInsight], total_nodes: int | None = None) -> InsightSummary:
        analyzed = [insight for insight in insights if insight.sufficient_data]
        highest = max(analyzed, key=lambda insight: insight.risk_score, default=None)
        average = (
            round(sum(insight.risk_score for insight in analyzed) / len(analyzed), 1)
            if analyzed
            else 0.0
        )
        return InsightSummary(
            total_nodes=len(analyzed) if total_nodes is None else total_nodes,
            nodes_analyzed=len(analyzed),
            anomalies_detected=sum(
                1
                for insight in analyzed
                if insight.anomaly_detection is not None and insight.anomaly_detection.is_anomaly
            ),
            high_risk_nodes=sum(1 for insight in analyzed if insight.risk_tier.is_alerting),
            average_risk_score=average,
            highest_risk_node=(
                HighestRiskNode(
                    node_id=highest.node_id,
                    risk_score=highest.risk_score,
                    risk_tier=highest.risk_tier,
                )
                if highest is not None
                else None
            ),
            insights=analyzed,
        )


def _anomaly_schema(result: AnomalyResult) -> AnomalyDetection:
    return AnomalyDetection.model_validate(asdict(result))


def _trend_schema(result: TrendResult) -> TrendPrediction:
    return TrendPrediction.model_validate(asdict(result))
