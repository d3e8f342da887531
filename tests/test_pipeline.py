from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List

import pytest

from app.schemas import AlertRecord, SensorReadingRecord
from datastore.mock_dynamodb import MockDynamoDBTable
from models.records import RiskTier, SensorReading
from services.broadcast import NEW_ALERT, SENSOR_UPDATE, SYSTEM_RESET, Broadcaster
from services.dispatcher import NotificationDispatcher
from services.mailer import DeliveryReport, LoggingMailer
from services.notifications import COMMUNITY, EMERGENCY, PDMA, AlertRenderer, NotificationPolicy, RenderedAlert
from services.pipeline import IngestionPipeline
from services.risk_scorer import RiskScorer
from services.rule_engine import RuleEngine
from storage.history import HistoryStore

_START = datetime(2024, 6, 1, tzinfo=timezone.utc)


class RecordingMailer(LoggingMailer):
    def __init__(self) -> None:
        super().__init__(sender="alerts@example.org")
        self.sent: List[tuple[RenderedAlert, tuple[str, ...]]] = []

    def send(self, alert: RenderedAlert, recipients: Iterable[str]) -> DeliveryReport:
        report = super().send(alert, recipients)
        self.sent.append((alert, report.recipients))
        return report


def _reading(
    index: int,
    node_id: str = "node-a",
    temperature: float = 2.0,
    seismic: float = 0.1,
    water_level: float = 200.0,
) -> SensorReading:
    return SensorReading(
        node_id=node_id,
        temperature=temperature,
        seismic_activity=seismic,
        water_level=water_level,
        timestamp=_START + timedelta(minutes=index),
    )


def _build_pipeline(tmp_path=None, readings_table=None) -> tuple[IngestionPipeline, RecordingMailer]:
    mailer = RecordingMailer()
    dispatcher = NotificationDispatcher(
        policy=NotificationPolicy(
            {PDMA: "pdma@example.org", EMERGENCY: "rescue@example.org", COMMUNITY: "village@example.org"}
        ),
        renderer=AlertRenderer(),
        mailer=mailer,
        languages=("en", "ur"),
        workers=2,
    )
    readings = readings_table or MockDynamoDBTable(
        name="readings",
        model=SensorReadingRecord,
        persistence_path=tmp_path / "readings.json" if tmp_path else None,
    )
    pipeline = IngestionPipeline(
        rule_engine=RuleEngine(history=HistoryStore(capacity=100)),
        risk_scorer=RiskScorer(),
        readings=readings,
        alerts=MockDynamoDBTable(name="alerts", model=AlertRecord),
        dispatcher=dispatcher,
        broadcaster=Broadcaster(),
    )
    return pipeline, mailer


@pytest.fixture
def pipeline_and_mailer(tmp_path):
    pipeline, mailer = _build_pipeline(tmp_path)
    yield pipeline, mailer
    pipeline.shutdown()


def _ingest_critical(pipeline: IngestionPipeline, node_id: str = "node-a") -> None:
    pipeline.ingest(_reading(0, node_id=node_id, water_level=200.0))
    pipeline.ingest(_reading(1, node_id=node_id, water_level=200.0))
    pipeline.ingest(_reading(2, node_id=node_id, temperature=15.0, seismic=0.8, water_level=250.0))


def test_quiet_reading_is_stored_without_alert(pipeline_and_mailer) -> None:
    pipeline, mailer = pipeline_and_mailer

    assessment = pipeline.ingest(_reading(0))

    assert assessment.risk_tier is RiskTier.LOW
    assert pipeline.get_assessment("node-a") == assessment
    assert len(pipeline.get_readings("node-a")) == 1
    assert pipeline.list_alerts() == []
    assert pipeline.dispatcher.pending() == []
    assert mailer.sent == []


def test_critical_reading_records_alert_and_notifies(pipeline_and_mailer) -> None:
    pipeline, mailer = pipeline_and_mailer

    _ingest_critical(pipeline)
    pipeline.dispatcher.wait_idle(timeout=5)

    alerts = pipeline.list_alerts()
    assert len(alerts) == 1
    assert alerts[0].assessment.risk_tier is RiskTier.CRITICAL
    assert alerts[0].assessment.risk_score == 140
    assert sorted(alert.language for alert, _ in mailer.sent) == ["en", "ur"]
    assert all(len(recipients) == 3 for _, recipients in mailer.sent)


def test_reading_persistence_failure_does_not_fail_ingestion(caplog) -> None:
    class BrokenTable(MockDynamoDBTable):
        def append_item(self, key, item) -> None:
            raise OSError("disk full")

    pipeline, _ = _build_pipeline(readings_table=BrokenTable(name="broken", model=SensorReadingRecord))
    try:
        with caplog.at_level(logging.ERROR, logger="services.pipeline"):
            assessment = pipeline.ingest(_reading(0, temperature=20.0))
    finally:
        pipeline.shutdown()

    assert assessment.risk_tier is RiskTier.MEDIUM
    assert pipeline.get_assessment("node-a") == assessment
    assert any(record.getMessage() == "Failed to persist reading" for record in caplog.records)


def test_missing_node_raises_key_error(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer

    with pytest.raises(KeyError):
        pipeline.get_assessment("ghost")
    with pytest.raises(KeyError):
        pipeline.get_insights("ghost")


def test_insights_use_persisted_window(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    pipeline.ingest(_reading(0))
    pipeline.ingest(_reading(1))

    sparse = pipeline.get_insights("node-a")
    pipeline.ingest(_reading(2))
    full = pipeline.get_insights("node-a")
    windowed = pipeline.get_insights("node-a", window_size=2)

    assert sparse.sufficient_data is False
    assert sparse.risk_tier is RiskTier.UNKNOWN
    assert full.sufficient_data is True
    assert full.data_points == 3
    assert full.timestamp == _START + timedelta(minutes=2)
    assert windowed.data_points == 2


def test_summary_counts_every_node(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    for index in range(3):
        pipeline.ingest(_reading(index, node_id="node-a"))
    pipeline.ingest(_reading(0, node_id="node-b"))

    summary = pipeline.summarize_insights()

    assert summary.total_nodes == 2
    assert summary.nodes_analyzed == 1


def test_alert_queries_filter_and_count(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    _ingest_critical(pipeline, node_id="node-a")
    pipeline.ingest(_reading(0, node_id="node-b", temperature=15.0, seismic=0.9))

    assert [a.assessment.node_id for a in pipeline.list_alerts(node_id="node-b")] == ["node-b"]
    assert [a.assessment.risk_tier for a in pipeline.list_alerts(risk_tier=RiskTier.HIGH)] == [RiskTier.HIGH]
    assert len(pipeline.list_alerts(limit=1)) == 1
    newest_first = pipeline.list_alerts()
    assert newest_first[0].created_at >= newest_first[1].created_at

    assert len(pipeline.active_alerts()) == 2
    assert pipeline.active_alerts(now=datetime.now(timezone.utc) + timedelta(days=2)) == []

    stats = pipeline.alert_stats()
    assert stats.total == 2
    assert stats.last_24h == 2
    assert stats.by_tier[RiskTier.CRITICAL] == 1
    assert stats.by_tier[RiskTier.HIGH] == 1
    assert stats.by_tier[RiskTier.MEDIUM] == 0


def test_overview_averages_recent_readings(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    pipeline.ingest(_reading(0, node_id="node-a", temperature=2.0, water_level=200.0))
    pipeline.ingest(_reading(1, node_id="node-b", temperature=4.0, water_level=300.0))

    overview = pipeline.overview(now=_START + timedelta(hours=1))
    stale = pipeline.overview(now=_START + timedelta(days=3))

    assert overview.total_nodes == 2
    assert overview.total_readings == 2
    assert overview.readings_last_24h == 2
    assert overview.active_nodes == ["node-a", "node-b"]
    assert overview.average_temperature == 3.0
    assert overview.average_water_level == 250.0
    assert stale.readings_last_24h == 0
    assert stale.average_temperature is None


def test_threshold_update_applies_to_next_reading(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer

    pipeline.update_thresholds(temperature=30.0)

    assert pipeline.thresholds.temperature == 30.0
    assert pipeline.ingest(_reading(0, temperature=20.0)).risk_score == 0


def test_reset_empties_every_store(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    _ingest_critical(pipeline)

    pipeline.reset_all()

    assert pipeline.list_nodes() == []
    assert pipeline.list_alerts() == []
    assert pipeline.rule_engine.history.node_ids() == []
    with pytest.raises(KeyError):
        pipeline.get_assessment("node-a")


def test_list_nodes_reports_latest_reading(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    pipeline.ingest(_reading(0, water_level=200.0))
    pipeline.ingest(_reading(1, water_level=210.0))

    nodes = pipeline.list_nodes()

    assert len(nodes) == 1
    assert nodes[0].total_readings == 2
    assert nodes[0].latest_reading.water_level == 210.0


def test_readings_survive_restart_with_persistence(tmp_path) -> None:
    first, _ = _build_pipeline(tmp_path)
    try:
        for index in range(3):
            first.ingest(_reading(index))
    finally:
        first.shutdown()

    second, _ = _build_pipeline(tmp_path)
    try:
        insight = second.get_insights("node-a")
    finally:
        second.shutdown()

    assert insight.data_points == 3


def test_events_are_broadcast_to_subscribers(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer

    async def scenario() -> list[str]:
        subscriber_id, queue = pipeline.broadcaster.subscribe()
        try:
            _ingest_critical(pipeline)
            pipeline.reset_all()
            events = []
            for _ in range(5):
                message = await asyncio.wait_for(queue.get(), timeout=1)
                events.append(message["event"])
            return events
        finally:
            pipeline.broadcaster.unsubscribe(subscriber_id)

    events = asyncio.run(scenario())

    assert events == [SENSOR_UPDATE, SENSOR_UPDATE, NEW_ALERT, SENSOR_UPDATE, SYSTEM_RESET]


def test_hourly_trends_average_each_hour_in_window(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    pipeline.ingest(_reading(0, temperature=2.0, seismic=0.1, water_level=200.0))
    pipeline.ingest(_reading(30, temperature=4.0, seismic=0.3, water_level=210.0))
    pipeline.ingest(_reading(70, temperature=6.0, seismic=0.2, water_level=220.0))

    day = pipeline.hourly_trends("node-a", now=_START + timedelta(hours=2))
    last_hour = pipeline.hourly_trends("node-a", hours=1, now=_START + timedelta(hours=2))

    assert day.period_hours == 24
    assert [trend.hour for trend in day.trends] == [_START, _START + timedelta(hours=1)]
    assert day.trends[0].readings_count == 2
    assert day.trends[0].avg_temperature == pytest.approx(3.0)
    assert day.trends[0].avg_seismic == pytest.approx(0.2)
    assert day.trends[0].avg_water_level == pytest.approx(205.0)
    assert day.trends[1].readings_count == 1
    assert [trend.readings_count for trend in last_hour.trends] == [1]


def test_hourly_trends_for_quiet_node_and_bad_period(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer

    assert pipeline.hourly_trends("ghost").trends == []
    with pytest.raises(ValueError):
        pipeline.hourly_trends("ghost", hours=0)


def test_latest_assessments_are_bounded_by_node_count(pipeline_and_mailer) -> None:
    pipeline, _ = pipeline_and_mailer
    pipeline.max_nodes = 2
    pipeline.ingest(_reading(0, node_id="node-a"))
    pipeline.ingest(_reading(0, node_id="node-b"))
    pipeline.ingest(_reading(1, node_id="node-a"))

    pipeline.ingest(_reading(0, node_id="node-c"))

    assert pipeline.get_assessment("node-a").node_id == "node-a"
    assert pipeline.get_assessment("node-c").node_id == "node-c"
    with pytest.raises(KeyError):
        pipeline.get_assessment("node-b")
