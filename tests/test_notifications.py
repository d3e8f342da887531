from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.schemas import AssessmentMetrics, RiskAssessment
from models.records import RiskTier
from services.notifications import (
    COMMUNITY,
    EMERGENCY,
    PDMA,
    AlertRenderer,
    NotificationPolicy,
    resolve_language,
)

_ADDRESSES = {
    PDMA: "pdma@example.org",
    EMERGENCY: "rescue@example.org",
    COMMUNITY: "village@example.org",
}


def _assessment(tier: RiskTier = RiskTier.CRITICAL, message: str = "CRITICAL GLOF ALERT at node-a!") -> RiskAssessment:
    return RiskAssessment(
        node_id="node-a",
        timestamp=datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc),
        risk_tier=tier,
        risk_score=140,
        risk_factors=["High temperature: 15.0°C (threshold: 10.0°C)"],
        metrics=AssessmentMetrics(
            temperature=15.0, seismic_activity=0.8, water_level=250.0, water_level_trend=25.0
        ),
        should_alert=tier.is_alerting,
        alert_message=message,
    )


@pytest.mark.parametrize(
    ("tier", "expected"),
    [
        (RiskTier.CRITICAL, {"pdma@example.org", "rescue@example.org", "village@example.org"}),
        (RiskTier.HIGH, {"pdma@example.org", "rescue@example.org"}),
        (RiskTier.MEDIUM, {"pdma@example.org"}),
        (RiskTier.LOW, set()),
        (RiskTier.UNKNOWN, set()),
    ],
)
def test_recipients_grow_with_severity(tier, expected) -> None:
    policy = NotificationPolicy(_ADDRESSES)

    assert policy.recipients_for(tier) == frozenset(expected)


def test_blank_group_address_is_skipped() -> None:
    policy = NotificationPolicy({PDMA: "pdma@example.org", EMERGENCY: "", COMMUNITY: "village@example.org"})

    assert policy.recipients_for(RiskTier.HIGH) == frozenset({"pdma@example.org"})


def test_english_rendering_has_badge_subject_and_metrics() -> None:
    rendered = AlertRenderer(dashboard_url="https://dash.example.org").render(_assessment(), "en")

    assert rendered.language == "en"
    assert rendered.subject == "[CRITICAL] GLOF Alert: CRITICAL Risk at node-a"
    assert rendered.priority == "high"
    assert "CRITICAL GLOF ALERT at node-a!" in rendered.text_body
    assert "15.0°C" in rendered.text_body
    assert "2024-06-01 08:30:00 UTC" in rendered.text_body
    assert "https://dash.example.org" in rendered.html_body
    assert 'dir="ltr"' in rendered.html_body


def test_urdu_rendering_is_right_to_left() -> None:
    rendered = AlertRenderer().render(_assessment(tier=RiskTier.HIGH), "ur")

    assert rendered.language == "ur"
    assert rendered.subject.startswith("[HIGH] ")
    assert "node-a" in rendered.subject
    assert 'dir="rtl"' in rendered.html_body
    assert rendered.priority == "normal"


def test_balti_rendering_uses_its_labels() -> None:
    rendered = AlertRenderer().render(_assessment(), "bs")

    assert rendered.subject == "[CRITICAL] GLOF Khabardári: CRITICAL Khatara at node-a"
    assert "Jagah" in rendered.text_body


def test_unsupported_language_falls_back_to_english() -> None:
    rendered = AlertRenderer().render(_assessment(), "fr")

    assert rendered.language == "en"
    assert resolve_language(None) == "en"
    assert resolve_language(" UR ") == "ur"


def test_dashboard_link_only_for_alerting_tiers() -> None:
    renderer = AlertRenderer(dashboard_url="https://dash.example.org")

    medium = renderer.render(_assessment(tier=RiskTier.MEDIUM), "en")

    assert "https://dash.example.org" not in medium.html_body
    assert "https://dash.example.org" not in medium.text_body


def test_html_body_escapes_message_content() -> None:
    rendered = AlertRenderer().render(_assessment(message="<script>alert(1)</script>"), "en")

    assert "<script>" not in rendered.html_body
    assert "&lt;script&gt;" in rendered.html_body
