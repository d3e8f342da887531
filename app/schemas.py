"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import RiskTier, SensorReading, Thresholds, TrendDirection


class SensorReadingIn(BaseModel):
    """Payload posted by a monitoring node."""

    node_id: str = Field(..., min_length=1, description="Stable identifier of the node.")
    temperature: float = Field(..., description="Air temperature in °C.")
    seismic_activity: float = Field(..., ge=0, description="Unitless seismic intensity.")
    water_level: float = Field(..., description="Lake water level in cm.")
    timestamp: Optional[datetime] = Field(
        default=None, description="Sample time; defaults to the time of receipt."
    )
    battery: Optional[float] = None
    signal_strength: Optional[float] = None

    def to_reading(self, received_at: Optional[datetime] = None) -> SensorReading:
        timestamp = self.timestamp or received_at or datetime.now(timezone.utc)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return SensorReading(
            node_id=self.node_id,
            temperature=self.temperature,
            seismic_activity=self.seismic_activity,
            water_level=self.water_level,
            timestamp=timestamp.astimezone(timezone.utc),
            battery=self.battery,
            signal_strength=self.signal_strength,
        )


class SensorReadingRecord(BaseModel):
    """Stored form of a reading."""

    node_id: str
    temperature: float
    seismic_activity: float
    water_level: float
    timestamp: datetime
    battery: Optional[float] = None
    signal_strength: Optional[float] = None

    @classmethod
    def from_reading(cls, reading: SensorReading) -> "SensorReadingRecord":
        return cls(
            node_id=reading.node_id,
            temperature=reading.temperature,
            seismic_activity=reading.seismic_activity,
            water_level=reading.water_level,
            timestamp=reading.timestamp,
            battery=reading.battery,
            signal_strength=reading.signal_strength,
        )

    def to_reading(self) -> SensorReading:
        return SensorReading(
            node_id=self.node_id,
            temperature=self.temperature,
            seismic_activity=self.seismic_activity,
            water_level=self.water_level,
            timestamp=self.timestamp,
            battery=self.battery,
            signal_strength=self.signal_strength,
        )


class AssessmentMetrics(BaseModel):
    temperature: float
    seismic_activity: float
    water_level: float
    water_level_trend: float = Field(
        ..., description="Percent change against the reading one lookback window ago."
    )


class RiskAssessment(BaseModel):
    """Rule-engine verdict for a single reading."""

    node_id: str
    timestamp: datetime
    risk_tier: RiskTier
    risk_score: int = Field(..., ge=0, description="Rule points; not clamped at 100.")
    risk_factors: List[str] = Field(default_factory=list)
    metrics: AssessmentMetrics
    should_alert: bool
    alert_message: str


class RiskFactor(BaseModel):
    name: str
    impact: float
    description: str


class ParameterAnomaly(BaseModel):
    parameter: str
    z_score: float


class AnomalyDetection(BaseModel):
    is_anomaly: bool
    confidence: float = Field(..., ge=0, le=100)
    max_z_score: float
    z_scores: Dict[str, float] = Field(default_factory=dict)
    anomalies: List[ParameterAnomaly] = Field(default_factory=list)
    details: str
    sufficient_data: bool = True


class TrendPoint(BaseModel):
    step: int
    value: float
    time_ahead: str


class TrendPrediction(BaseModel):
    parameter: str
    trend: TrendDirection
    slope: float
    confidence: float = Field(..., ge=0, le=100)
    predictions: List[TrendPoint] = Field(default_factory=list)
    current_value: Optional[float] = None


class ParameterTrends(BaseModel):
    temperature: TrendPrediction
    water_level: TrendPrediction
    seismic_activity: TrendPrediction


class MLInsight(BaseModel):
    """Statistical risk view computed on demand from a reading window."""

    node_id: str
    data_points: int = Field(..., ge=0)
    sufficient_data: bool
    message: Optional[str] = None
    timestamp: Optional[datetime] = Field(
        default=None, description="Timestamp of the newest reading in the window."
    )
    risk_score: float = Field(..., ge=0, le=100)
    risk_tier: RiskTier
    factors: List[RiskFactor] = Field(default_factory=list)
    anomaly_detection: Optional[AnomalyDetection] = None
    trends: Optional[ParameterTrends] = None
    recommendation: str


class HighestRiskNode(BaseModel):
    node_id: str
    risk_score: float
    risk_tier: RiskTier


class InsightSummary(BaseModel):
    total_nodes: int = Field(..., ge=0)
    nodes_analyzed: int = Field(..., ge=0)
    anomalies_detected: int = Field(..., ge=0)
    high_risk_nodes: int = Field(..., ge=0)
    average_risk_score: float
    highest_risk_node: Optional[HighestRiskNode] = None
    insights: List[MLInsight] = Field(default_factory=list)


class AlertRecord(BaseModel):
    """An alerting assessment as kept by the alerts table."""

    alert_id: str
    created_at: datetime
    assessment: RiskAssessment


class AlertStats(BaseModel):
    total: int = Field(..., ge=0)
    by_tier: Dict[RiskTier, int] = Field(default_factory=dict)
    last_24h: int = Field(..., ge=0)


class NodeSummary(BaseModel):
    node_id: str
    latest_reading: SensorReadingRecord
    total_readings: int = Field(..., ge=0)


class SystemOverview(BaseModel):
    total_nodes: int = Field(..., ge=0)
    total_readings: int = Field(..., ge=0)
    readings_last_24h: int = Field(..., ge=0)
    active_nodes: List[str] = Field(default_factory=list)
    average_temperature: Optional[float] = None
    average_seismic_activity: Optional[float] = None
    average_water_level: Optional[float] = None


class HourlyTrend(BaseModel):
    """Averages of one node's readings within a single UTC hour."""

    hour: datetime = Field(..., description="Start of the hour bucket (UTC).")
    avg_temperature: float
    avg_seismic: float
    avg_water_level: float
    readings_count: int = Field(..., ge=1)


class NodeTrends(BaseModel):
    node_id: str
    period_hours: int = Field(..., ge=1)
    trends: List[HourlyTrend] = Field(default_factory=list)


class IngestResponse(BaseModel):
    """Immediate response after accepting a reading."""

    success: bool = True
    message: str = "Sensor data received"
    assessment: RiskAssessment


class ResetResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: datetime


class ThresholdsModel(BaseModel):
    temperature: float
    seismic: float
    water_level_increase_pct: float

    @classmethod
    def from_thresholds(cls, thresholds: Thresholds) -> "ThresholdsModel":
        return cls(
            temperature=thresholds.temperature,
            seismic=thresholds.seismic,
            water_level_increase_pct=thresholds.water_level_increase_pct,
        )


class ThresholdsUpdate(BaseModel):
    """Partial threshold update; omitted fields keep their current value."""

    temperature: Optional[float] = None
    seismic: Optional[float] = Field(default=None, ge=0)
    water_level_increase_pct: Optional[float] = Field(default=None, gt=0)


class EmailTestRequest(BaseModel):
    recipient: str = Field(..., min_length=3)


class EmailTestResponse(BaseModel):
    success: bool
    demo: bool
    message: str
