from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.records import RiskTier, SensorReading, Thresholds
from services.rule_engine import LOOKBACK_READINGS, RuleEngine, tier_for_score
from storage.history import HistoryStore

_START = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _reading(
    index: int,
    temperature: float = 2.0,
    seismic: float = 0.1,
    water_level: float = 200.0,
    node_id: str = "node-a",
) -> SensorReading:
    return SensorReading(
        node_id=node_id,
        temperature=temperature,
        seismic_activity=seismic,
        water_level=water_level,
        timestamp=_START + timedelta(minutes=index),
    )


def _engine(capacity: int = 100) -> RuleEngine:
    return RuleEngine(history=HistoryStore(capacity=capacity), thresholds=Thresholds())


def test_all_indicators_produce_critical_with_combined_bonus() -> None:
    engine = _engine()
    engine.evaluate(_reading(0, water_level=200.0))
    engine.evaluate(_reading(1, water_level=200.0))

    assessment = engine.evaluate(_reading(2, temperature=15.0, seismic=0.8, water_level=250.0))

    assert assessment.risk_score == 140
    assert assessment.risk_tier is RiskTier.CRITICAL
    assert assessment.should_alert is True
    assert len(assessment.risk_factors) == 4
    assert assessment.risk_factors[0] == "High temperature: 15.0°C (threshold: 10.0°C)"
    assert assessment.risk_factors[2] == "Rapid water level increase: 25.0% in 1 hour"
    assert assessment.risk_factors[3].startswith("COMBINED RISK")
    assert assessment.metrics.water_level_trend == pytest.approx(25.0)
    assert assessment.alert_message.startswith("CRITICAL GLOF ALERT at node-a!")
    assert assessment.timestamp == _START + timedelta(minutes=2)


def test_quiet_reading_is_low_without_alert() -> None:
    engine = _engine()

    assessment = engine.evaluate(_reading(0, temperature=5.0, seismic=0.1, water_level=250.0))

    assert assessment.risk_score == 0
    assert assessment.risk_tier is RiskTier.LOW
    assert assessment.risk_factors == []
    assert assessment.should_alert is False
    assert assessment.alert_message == "Normal conditions at node-a"


@pytest.mark.parametrize(
    ("temperature", "seismic", "expected_score", "expected_tier"),
    [
        (15.0, 0.1, 30, RiskTier.MEDIUM),
        (2.0, 0.9, 35, RiskTier.MEDIUM),
        (15.0, 0.9, 65, RiskTier.HIGH),
    ],
)
def test_partial_triggers_map_to_tiers(temperature, seismic, expected_score, expected_tier) -> None:
    engine = _engine()

    assessment = engine.evaluate(_reading(0, temperature=temperature, seismic=seismic))

    assert assessment.risk_score == expected_score
    assert assessment.risk_tier is expected_tier
    assert assessment.should_alert is expected_tier.is_alerting


def test_threshold_comparisons_are_strict_for_temperature_and_seismic() -> None:
    engine = _engine()

    assessment = engine.evaluate(_reading(0, temperature=10.0, seismic=0.5))

    assert assessment.risk_score == 0


def test_seismic_plus_water_trend_is_critical_without_bonus() -> None:
    engine = _engine()
    engine.evaluate(_reading(0, water_level=100.0))
    engine.evaluate(_reading(1, water_level=100.0))

    assessment = engine.evaluate(_reading(2, seismic=0.9, water_level=150.0))

    assert assessment.risk_score == 70
    assert assessment.risk_tier is RiskTier.CRITICAL
    assert not any(f.startswith("COMBINED") for f in assessment.risk_factors)


def test_water_trend_is_zero_for_first_and_second_reading() -> None:
    engine = _engine()

    first = engine.evaluate(_reading(0, water_level=100.0))
    second = engine.evaluate(_reading(1, water_level=500.0))

    assert first.metrics.water_level_trend == 0.0
    assert second.metrics.water_level_trend == 0.0
    assert second.risk_score == 0


def test_zero_previous_level_never_triggers() -> None:
    engine = _engine()
    engine.evaluate(_reading(0, water_level=0.0))
    engine.evaluate(_reading(1, water_level=0.0))

    assessment = engine.evaluate(_reading(2, water_level=500.0))

    assert assessment.metrics.water_level_trend == 0.0
    assert assessment.risk_score == 0


def test_lookback_reaches_back_a_fixed_number_of_positions() -> None:
    engine = _engine(capacity=200)
    engine.evaluate(_reading(0, water_level=50.0))
    for index in range(1, 80):
        engine.evaluate(_reading(index, water_level=100.0))

    assessment = engine.evaluate(_reading(80, water_level=110.0))

    # The reading 60 positions back is one of the 100 cm readings, not the first.
    assert LOOKBACK_READINGS == 60
    assert assessment.metrics.water_level_trend == pytest.approx(10.0)


def test_score_never_decreases_when_more_indicators_trigger() -> None:
    quiet = _engine().evaluate(_reading(0))
    hot = _engine().evaluate(_reading(0, temperature=20.0))
    hot_and_shaking = _engine().evaluate(_reading(0, temperature=20.0, seismic=1.0))

    assert quiet.risk_score <= hot.risk_score <= hot_and_shaking.risk_score
    assert quiet.risk_tier.severity <= hot.risk_tier.severity <= hot_and_shaking.risk_tier.severity


def test_updated_thresholds_apply_to_next_evaluation() -> None:
    engine = _engine()

    updated = engine.update_thresholds(temperature=20.0)
    assessment = engine.evaluate(_reading(0, temperature=15.0))

    assert updated.temperature == 20.0
    assert updated.seismic == 0.5
    assert engine.thresholds is updated
    assert assessment.risk_score == 0


def test_per_call_thresholds_override_configured_ones() -> None:
    engine = _engine()

    assessment = engine.evaluate(_reading(0, temperature=5.0), thresholds=Thresholds(temperature=0.0))

    assert assessment.risk_score == 30
    assert engine.thresholds.temperature == 10.0


def test_reset_forgets_history() -> None:
    engine = _engine()
    engine.evaluate(_reading(0, water_level=100.0))
    engine.evaluate(_reading(1, water_level=100.0))

    engine.reset()
    assessment = engine.evaluate(_reading(2, water_level=300.0))

    assert assessment.metrics.water_level_trend == 0.0
    assert engine.history.get("node-a") == (_reading(2, water_level=300.0),)


@pytest.mark.parametrize(
    ("score", "tier"),
    [(0, RiskTier.LOW), (19, RiskTier.LOW), (20, RiskTier.MEDIUM), (40, RiskTier.HIGH), (70, RiskTier.CRITICAL)],
)
def test_tier_cutoffs(score, tier) -> None:
    assert tier_for_score(score) is tier


def test_glacier_lake_surge_against_lookback_reading_is_critical() -> None:
    engine = _engine()
    for index in range(LOOKBACK_READINGS + 10):
        engine.evaluate(_reading(index, water_level=300.0, node_id="glacier_lake_01"))

    assessment = engine.evaluate(
        _reading(LOOKBACK_READINGS + 10, temperature=25.0, seismic=0.8, water_level=400.0, node_id="glacier_lake_01")
    )

    assert assessment.risk_score == 140
    assert assessment.risk_tier is RiskTier.CRITICAL
    assert assessment.metrics.water_level_trend == pytest.approx(100 / 3)
    assert assessment.risk_factors == [
        "High temperature: 25.0°C (threshold: 10.0°C)",
        "Elevated seismic activity: 0.8 (threshold: 0.5)",
        "Rapid water level increase: 33.3% in 1 hour",
        "COMBINED RISK: All indicators showing dangerous levels",
    ]
    assert assessment.alert_message.startswith("CRITICAL GLOF ALERT at glacier_lake_01!")
