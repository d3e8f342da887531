"""Ingestion orchestration: evaluate, persist, broadcast and notify."""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Optional
from uuid import uuid4

from app.schemas import (
    AlertRecord,
    AlertStats,
    HourlyTrend,
    InsightSummary,
    MLInsight,
    NodeSummary,
    NodeTrends,
    RiskAssessment,
    SensorReadingRecord,
    SystemOverview,
)
from datastore.mock_dynamodb import (
    MockDynamoDBTable,
    build_default_alerts_table,
    build_default_readings_table,
)
from models.records import RiskTier, SensorReading, Thresholds
from services.broadcast import (
    NEW_ALERT,
    SENSOR_UPDATE,
    SYSTEM_RESET,
    Broadcaster,
    build_default_broadcaster,
)
from services.dispatcher import NotificationDispatcher
from services.mailer import DeliveryReport, build_mailer
from services.notifications import build_default_policy, build_default_renderer
from services.risk_scorer import RiskScorer
from services.rule_engine import RuleEngine
from settings import get_settings
from storage.history import build_default_history_store

logger = logging.getLogger(__name__)

ACTIVE_ALERT_WINDOW = timedelta(hours=24)


class IngestionPipeline:
    """Coordinates the rule engine, stores, broadcaster and notifier.

    ``ingest`` returns as soon as the assessment is known. Persistence and
    broadcast problems are logged and do not fail the ingestion; email
    delivery happens on the dispatcher's worker pool.
    """

    def __init__(
        self,
        rule_engine: RuleEngine,
        risk_scorer: RiskScorer,
        readings: MockDynamoDBTable[SensorReadingRecord],
        alerts: MockDynamoDBTable[AlertRecord],
        dispatcher: NotificationDispatcher,
        broadcaster: Broadcaster,
        insights_window_size: int = 50,
        max_nodes: Optional[int] = None,
    ) -> None:
        self.rule_engine = rule_engine
        self.risk_scorer = risk_scorer
        self.readings = readings
        self.alerts = alerts
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.insights_window_size = insights_window_size
        self.max_nodes = max_nodes
        self._latest: "OrderedDict[str, RiskAssessment]" = OrderedDict()
        self._latest_lock = Lock()

    def ingest(self, reading: SensorReading) -> RiskAssessment:
        assessment = self.rule_engine.evaluate(reading)
        with self._latest_lock:
            self._latest[reading.node_id] = assessment
            self._latest.move_to_end(reading.node_id)
            if self.max_nodes is not None and len(self._latest) > self.max_nodes:
                self._latest.popitem(last=False)

        record = SensorReadingRecord.from_reading(reading)
        try:
            self.readings.append_item(reading.node_id, record)
        except Exception:  # noqa: BLE001 - storage must not fail ingestion
            logger.exception("Failed to persist reading", extra={"node_id": reading.node_id})

        if assessment.should_alert:
            self._raise_alert(assessment)

        self._publish(
            SENSOR_UPDATE,
            {
                "reading": record.model_dump(mode="json"),
                "assessment": assessment.model_dump(mode="json"),
            },
        )
        logger.info(
            "Reading ingested",
            extra={
                "node_id": reading.node_id,
                "risk_tier": assessment.risk_tier,
                "risk_score": assessment.risk_score,
            },
        )
        return assessment

    def get_assessment(self, node_id: str) -> RiskAssessment:
        with self._latest_lock:
            assessment = self._latest.get(node_id)
        if assessment is None:
            raise KeyError(f"No assessment recorded for node {node_id!r}.")
        return assessment

    def get_readings(self, node_id: str, limit: Optional[int] = None) -> List[SensorReadingRecord]:
        return self.readings.query(node_id, limit=limit)

    def get_insights(self, node_id: str, window_size: Optional[int] = None) -> MLInsight:
        size = window_size or self.insights_window_size
        if size < 1:
            raise ValueError("Window size must be positive.")
        records = self.readings.query(node_id, limit=size)
        if not records:
            raise KeyError(f"No readings found for node {node_id!r}.")
        window = [record.to_reading() for record in records]
        return self.risk_scorer.score(window, node_id)

    def summarize_insights(self, window_size: Optional[int] = None) -> InsightSummary:
        node_ids = self.readings.keys()
        insights = []
        for node_id in node_ids:
            try:
                insights.append(self.get_insights(node_id, window_size))
            except KeyError:
                continue
        return self.risk_scorer.summarize(insights, total_nodes=len(node_ids))

    def list_nodes(self) -> List[NodeSummary]:
        summaries = []
        for node_id in self.readings.keys():
            latest = self.readings.query(node_id, limit=1)
            if not latest:
                continue
            summaries.append(
                NodeSummary(
                    node_id=node_id,
                    latest_reading=latest[0],
                    total_readings=self.readings.count(node_id),
                )
            )
        return summaries

    def list_alerts(
        self,
        limit: int = 50,
        risk_tier: Optional[RiskTier] = None,
        node_id: Optional[str] = None,
    ) -> List[AlertRecord]:
        records = self.alerts.scan()
        if risk_tier is not None:
            records = [r for r in records if r.assessment.risk_tier is risk_tier]
        if node_id is not None:
            records = [r for r in records if r.assessment.node_id == node_id]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records[:limit]

    def active_alerts(self, now: Optional[datetime] = None) -> List[AlertRecord]:
        cutoff = (now or datetime.now(timezone.utc)) - ACTIVE_ALERT_WINDOW
        active = [
            record
            for record in self.alerts.scan()
            if record.assessment.risk_tier.is_alerting and record.created_at > cutoff
        ]
        active.sort(key=lambda record: record.created_at, reverse=True)
        return active

    def alert_stats(self, now: Optional[datetime] = None) -> AlertStats:
        cutoff = (now or datetime.now(timezone.utc)) - ACTIVE_ALERT_WINDOW
        records = self.alerts.scan()
        by_tier = {
            tier: 0 for tier in (RiskTier.CRITICAL, RiskTier.HIGH, RiskTier.MEDIUM, RiskTier.LOW)
        }
        for record in records:
            tier = record.assessment.risk_tier
            by_tier[tier] = by_tier.get(tier, 0) + 1
        return AlertStats(
            total=len(records),
            by_tier=by_tier,
            last_24h=sum(1 for record in records if record.created_at > cutoff),
        )

    def overview(self, now: Optional[datetime] = None) -> SystemOverview:
        cutoff = (now or datetime.now(timezone.utc)) - ACTIVE_ALERT_WINDOW
        records = self.readings.scan()
        recent = [record for record in records if record.timestamp > cutoff]

        def _average(values: List[float], digits: int) -> Optional[float]:
            return round(sum(values) / len(values), digits) if values else None

        return SystemOverview(
            total_nodes=len(self.readings.keys()),
            total_readings=len(records),
            readings_last_24h=len(recent),
            active_nodes=sorted({record.node_id for record in recent}),
            average_temperature=_average([r.temperature for r in recent], 2),
            average_seismic_activity=_average([r.seismic_activity for r in recent], 3),
            average_water_level=_average([r.water_level for r in recent], 1),
        )

    def hourly_trends(self, node_id: str, hours: int = 24, now: Optional[datetime] = None) -> NodeTrends:
        """Average a node's readings per UTC hour over the last ``hours`` hours.

        Buckets are returned oldest first. A node without recent readings
        yields an empty list rather than an error.
        """
        if hours < 1:
            raise ValueError("Trend period must be at least one hour.")
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        buckets: Dict[datetime, List[SensorReadingRecord]] = {}
        for record in self.readings.query(node_id):
            if record.timestamp <= cutoff:
                continue
            hour = record.timestamp.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
            buckets.setdefault(hour, []).append(record)

        trends = [
            HourlyTrend(
                hour=hour,
                avg_temperature=sum(r.temperature for r in records) / len(records),
                avg_seismic=sum(r.seismic_activity for r in records) / len(records),
                avg_water_level=sum(r.water_level for r in records) / len(records),
                readings_count=len(records),
            )
            for hour, records in sorted(buckets.items())
        ]
        return NodeTrends(node_id=node_id, period_hours=hours, trends=trends)

    @property
    def thresholds(self) -> Thresholds:
        return self.rule_engine.thresholds

    def update_thresholds(
        self,
        temperature: Optional[float] = None,
        seismic: Optional[float] = None,
        water_level_increase_pct: Optional[float] = None,
    ) -> Thresholds:
        return self.rule_engine.update_thresholds(
            temperature=temperature,
            seismic=seismic,
            water_level_increase_pct=water_level_increase_pct,
        )

    def send_test_email(self, recipient: str) -> DeliveryReport:
        return self.dispatcher.send_test(recipient)

    def reset_all(self) -> None:
        """Forget every reading, assessment and alert."""
        self.rule_engine.reset()
        with self._latest_lock:
            self._latest.clear()
        self.readings.clear()
        self.alerts.clear()
        self._publish(SYSTEM_RESET, {"timestamp": datetime.now(timezone.utc).isoformat()})
        logger.info("System reset complete")

    def shutdown(self) -> None:
        """Clean up notifier resources during application shutdown."""
        self.dispatcher.shutdown()

    def _raise_alert(self, assessment: RiskAssessment) -> None:
        record = AlertRecord(
            alert_id=str(uuid4()),
            created_at=datetime.now(timezone.utc),
            assessment=assessment,
        )
        try:
            self.alerts.append_item(assessment.node_id, record)
        except Exception:  # noqa: BLE001 - storage must not fail ingestion
            logger.exception("Failed to persist alert", extra={"node_id": assessment.node_id})

        self._publish(NEW_ALERT, record.model_dump(mode="json"))
        self.dispatcher.dispatch(assessment)
        logger.warning(
            "Alert raised",
            extra={
                "node_id": assessment.node_id,
                "risk_tier": assessment.risk_tier,
                "risk_score": assessment.risk_score,
            },
        )

    def _publish(self, event: str, data: dict) -> None:
        try:
            self.broadcaster.publish(event, data)
        except Exception:  # noqa: BLE001 - live updates are best effort
            logger.exception("Broadcast failed", extra={"event": event})


@lru_cache
def build_default_pipeline(workers: Optional[int] = None) -> IngestionPipeline:
    """Factory that wires the pipeline with default stores and notifier."""
    settings = get_settings()
    rule_engine = RuleEngine(
        history=build_default_history_store(),
        thresholds=Thresholds(
            temperature=settings.temperature_threshold,
            seismic=settings.seismic_threshold,
            water_level_increase_pct=settings.water_level_increase_pct,
        ),
    )
    dispatcher = NotificationDispatcher(
        policy=build_default_policy(),
        renderer=build_default_renderer(),
        mailer=build_mailer(settings),
        languages=settings.alert_languages,
        workers=workers or settings.notifier_workers,
    )
    return IngestionPipeline(
        rule_engine=rule_engine,
        risk_scorer=RiskScorer(),
        readings=build_default_readings_table(),
        alerts=build_default_alerts_table(),
        dispatcher=dispatcher,
        broadcaster=build_default_broadcaster(),
        insights_window_size=settings.insights_window_size,
        max_nodes=settings.history_max_nodes,
    )
