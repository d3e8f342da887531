"""Closed-form statistics over a window of readings.

Nothing here keeps state between calls: every result is recomputed from the
window that is passed in.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from models.records import SensorReading, TrendDirection

PARAMETERS = ("temperature", "seismic_activity", "water_level")

MIN_READINGS = 3
DEFAULT_Z_THRESHOLD = 2.5
TREND_WINDOW = 20
TREND_SLOPE_CUTOFF = 0.1
MINUTES_PER_STEP = 10

# Slopes are compared after rounding so that an exactly linear series with a
# step of 0.1 is not pushed over the cutoff by float noise.
_SLOPE_DIGITS = 6


@dataclass(frozen=True)
class ParameterAnomaly:
    parameter: str
    z_score: float


@dataclass(frozen=True)
class AnomalyResult:
    is_anomaly: bool
    confidence: float
    max_z_score: float
    details: str
    z_scores: Dict[str, float] = field(default_factory=dict)
    anomalies: List[ParameterAnomaly] = field(default_factory=list)
    sufficient_data: bool = True


@dataclass(frozen=True)
class TrendPoint:
    step: int
    value: float
    time_ahead: str


@dataclass(frozen=True)
class TrendResult:
    parameter: str
    trend: TrendDirection
    slope: float
    confidence: float
    predictions: List[TrendPoint] = field(default_factory=list)
    current_value: Optional[float] = None


def _values(readings: Sequence[SensorReading], parameter: str) -> List[float]:
    if parameter not in PARAMETERS:
        raise ValueError(f"Unknown parameter {parameter!r}; expected one of {', '.join(PARAMETERS)}.")
    return [float(getattr(reading, parameter)) for reading in readings]


def z_score(value: float, mean: float, std_dev: float) -> float:
    """Absolute z-score; a flat series (zero spread) scores 0."""
    if std_dev == 0:
        return 0.0
    return abs((value - mean) / std_dev)


def detect_anomalies(
    readings: Sequence[SensorReading],
    z_threshold: float = DEFAULT_Z_THRESHOLD,
) -> AnomalyResult:
    """Z-score check of the newest reading against the whole window."""
    if len(readings) < MIN_READINGS:
        return AnomalyResult(
            is_anomaly=False,
            confidence=0.0,
            max_z_score=0.0,
            details="Insufficient data",
            sufficient_data=False,
        )

    latest = readings[-1]
    z_scores: Dict[str, float] = {}
    for parameter in PARAMETERS:
        values = _values(readings, parameter)
        mean = statistics.mean(values)
        std_dev = statistics.pstdev(values, mu=mean)
        z_scores[parameter] = z_score(float(getattr(latest, parameter)), mean, std_dev)

    max_z = max(z_scores.values())
    anomalies = [
        ParameterAnomaly(parameter=parameter, z_score=round(score, 2))
        for parameter, score in z_scores.items()
        if score > z_threshold
    ]
    is_anomaly = max_z > z_threshold
    if is_anomaly:
        details = "Anomaly detected in " + ", ".join(a.parameter for a in anomalies)
    else:
        details = "Normal pattern detected"

    return AnomalyResult(
        is_anomaly=is_anomaly,
        confidence=round(min(max_z / 3 * 100, 100.0), 1),
        max_z_score=round(max_z, 2),
        details=details,
        z_scores={parameter: round(score, 2) for parameter, score in z_scores.items()},
        anomalies=anomalies,
    )


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> Tuple[float, float]:
    """Ordinary least squares fit; returns ``(slope, intercept)``."""
    n = len(xs)
    if n != len(ys):
        raise ValueError("x and y series must have the same length.")
    if n < 2:
        raise ValueError("At least two points are required for a regression.")

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        raise ValueError("x series has no spread.")
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def classify_slope(slope: float) -> TrendDirection:
    if slope > TREND_SLOPE_CUTOFF:
        return TrendDirection.increasing
    if slope < -TREND_SLOPE_CUTOFF:
        return TrendDirection.decreasing
    return TrendDirection.stable


def predict_trend(
    readings: Sequence[SensorReading],
    parameter: str,
    steps_ahead: int = 6,
) -> TrendResult:
    """Fit a line through the last readings of ``parameter`` and extrapolate it."""
    values = _values(readings, parameter)
    if len(values) < MIN_READINGS:
        return TrendResult(
            parameter=parameter,
            trend=TrendDirection.unknown,
            slope=0.0,
            confidence=0.0,
        )

    ys = values[-TREND_WINDOW:]
    xs = [float(index) for index in range(len(ys))]
    fitted_slope, intercept = linear_regression(xs, ys)
    slope = round(fitted_slope, _SLOPE_DIGITS)

    n = len(ys)
    predictions = [
        TrendPoint(
            step=step,
            value=round(fitted_slope * (n - 1 + step) + intercept, 2),
            time_ahead=f"+{step * MINUTES_PER_STEP}min",
        )
        for step in range(1, steps_ahead + 1)
    ]

    y_mean = statistics.mean(ys)
    ss_tot = sum((y - y_mean) ** 2 for y in ys)
    ss_res = sum((y - (fitted_slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    r_squared = 1.0 if ss_tot == 0 else 1 - ss_res / ss_tot

    return TrendResult(
        parameter=parameter,
        trend=classify_slope(slope),
        slope=slope,
        confidence=round(max(0.0, min(100.0, r_squared * 100)), 1),
        predictions=predictions,
        current_value=ys[-1],
    )
