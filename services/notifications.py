"""Who gets told about an assessment, and what the message says."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from app.schemas import RiskAssessment
from models.records import RiskTier
from settings import get_settings

DEFAULT_LANGUAGE = "en"

PDMA = "pdma"
EMERGENCY = "emergency"
COMMUNITY = "community"

_TIER_GROUPS: Dict[RiskTier, tuple[str, ...]] = {
    RiskTier.CRITICAL: (PDMA, EMERGENCY, COMMUNITY),
    RiskTier.HIGH: (PDMA, EMERGENCY),
    RiskTier.MEDIUM: (PDMA,),
    RiskTier.LOW: (),
    RiskTier.UNKNOWN: (),
}

_TIER_BADGES = {
    RiskTier.CRITICAL: "[CRITICAL]",
    RiskTier.HIGH: "[HIGH]",
    RiskTier.MEDIUM: "[MEDIUM]",
    RiskTier.LOW: "[LOW]",
    RiskTier.UNKNOWN: "[INFO]",
}

_TIER_COLORS = {
    RiskTier.CRITICAL: {"bg": "#DC2626", "text": "#FFFFFF", "border": "#991B1B"},
    RiskTier.HIGH: {"bg": "#EA580C", "text": "#FFFFFF", "border": "#C2410C"},
    RiskTier.MEDIUM: {"bg": "#EAB308", "text": "#000000", "border": "#A16207"},
    RiskTier.LOW: {"bg": "#10B981", "text": "#FFFFFF", "border": "#047857"},
    RiskTier.UNKNOWN: {"bg": "#6B7280", "text": "#FFFFFF", "border": "#374151"},
}

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "direction": "ltr",
        "subject": "GLOF Alert: {tier} Risk at {node_id}",
        "title": "Glacier Lake Outburst Flood (GLOF) Alert",
        "subtitle": "Early Warning System - Project Barfani",
        "alert_level": "Alert Level",
        "location": "Location",
        "message": "Message",
        "readings": "Sensor Readings",
        "temperature": "Temperature",
        "seismic": "Seismic Activity",
        "water_level": "Water Level",
        "timestamp": "Detection Time",
        "action": "Recommended Actions",
        "dashboard": "View Live Dashboard",
        "footer": "This is an automated alert from Project Barfani GLOF monitoring system.",
        "contact_pdma": "Contact PDMA Gilgit-Baltistan immediately",
        "evacuate": "Prepare for possible evacuation",
        "monitor": "Continue monitoring situation",
        "stay": "Situation normal, stay informed",
    },
    "ur": {
        "direction": "rtl",
        "subject": "GLOF الرٹ: {node_id} پر {tier} خطرہ",
        "title": "گلیشیئر جھیل سیلاب (GLOF) انتباہ",
        "subtitle": "ابتدائی وارننگ سسٹم - پروجیکٹ برفانی",
        "alert_level": "الرٹ کی سطح",
        "location": "مقام",
        "message": "پیغام",
        "readings": "سینسر ریڈنگز",
        "temperature": "درجہ حرارت",
        "seismic": "زلزلے کی سرگرمی",
        "water_level": "پانی کی سطح",
        "timestamp": "وقت",
        "action": "تجویز کردہ اقدامات",
        "dashboard": "ڈیش بورڈ دیکھیں",
        "footer": "یہ پروجیکٹ برفانی GLOF مانیٹرنگ سسٹم کی خودکار الرٹ ہے۔",
        "contact_pdma": "فوری طور پر PDMA گلگت بلتستان سے رابطہ کریں",
        "evacuate": "ممکنہ انخلا کی تیاری کریں",
        "monitor": "صورتحال کی نگرانی جاری رکھیں",
        "stay": "صورتحال معمول پر ہے، باخبر رہیں",
    },
    "bs": {
        "direction": "ltr",
        "subject": "GLOF Khabardári: {tier} Khatara at {node_id}",
        "title": "Glacier Lake Selab (GLOF) Khabardári",
        "subtitle": "Pehle Warning System - Barfani Project",
        "alert_level": "Alert Daraja",
        "location": "Jagah",
        "message": "Paigham",
        "readings": "Sensor Readings",
        "temperature": "Tápman",
        "seismic": "Zalzala Activity",
        "water_level": "Hik Level",
        "timestamp": "Waqt",
        "action": "Tavsiya Actions",
        "dashboard": "Dashboard dekho",
        "footer": "Ye Barfani Project GLOF monitoring system ki automatic alert.",
        "contact_pdma": "Fauran PDMA Gilgit-Baltistan se rabita",
        "evacuate": "Mumkin evacuation ki tayyari",
        "monitor": "Halat ki nigrani jari",
        "stay": "Halat normal, khabardar rahen",
    },
}

SUPPORTED_LANGUAGES = tuple(TRANSLATIONS)

_ACTION_KEYS = {
    RiskTier.CRITICAL: ("contact_pdma", "evacuate"),
    RiskTier.HIGH: ("evacuate", "monitor"),
    RiskTier.MEDIUM: ("monitor",),
    RiskTier.LOW: ("stay",),
    RiskTier.UNKNOWN: ("monitor",),
}

_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class RenderedAlert:
    language: str
    subject: str
    html_body: str
    text_body: str
    priority: str = "normal"


class NotificationPolicy:
    """Maps a tier to the stakeholder addresses that should hear about it."""

    def __init__(self, addresses: Mapping[str, str]) -> None:
        self.addresses = dict(addresses)

    def groups_for(self, tier: RiskTier) -> tuple[str, ...]:
        return _TIER_GROUPS.get(tier, ())

    def recipients_for(self, tier: RiskTier) -> FrozenSet[str]:
        return frozenset(
            self.addresses[group]
            for group in self.groups_for(tier)
            if self.addresses.get(group)
        )


def resolve_language(language: Optional[str]) -> str:
    candidate = (language or "").strip().lower()
    return candidate if candidate in TRANSLATIONS else DEFAULT_LANGUAGE


class AlertRenderer:
    """Renders localized subject, HTML and text bodies for an assessment."""

    def __init__(self, dashboard_url: str = "http://localhost:3000", template_dir: Path = _TEMPLATE_DIR) -> None:
        self.dashboard_url = dashboard_url
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, assessment: RiskAssessment, language: Optional[str] = None) -> RenderedAlert:
        lang = resolve_language(language)
        labels = TRANSLATIONS[lang]
        tier = assessment.risk_tier
        badge = _TIER_BADGES.get(tier, "[INFO]")
        subject = f"{badge} " + labels["subject"].format(tier=tier.value, node_id=assessment.node_id)
        context = {
            "lang": lang,
            "t": labels,
            "badge": badge,
            "subject": subject,
            "tier": tier.value,
            "colors": _TIER_COLORS.get(tier, _TIER_COLORS[RiskTier.LOW]),
            "assessment": assessment,
            "metrics": assessment.metrics,
            "detected_at": assessment.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC"),
            "actions": [labels[key] for key in _ACTION_KEYS.get(tier, ("monitor",))],
            "show_dashboard_link": tier.is_alerting,
            "dashboard_url": self.dashboard_url,
        }
        return RenderedAlert(
            language=lang,
            subject=subject,
            html_body=self._env.get_template("email/alert.html").render(context),
            text_body=self._env.get_template("email/alert.txt").render(context),
            priority="high" if tier is RiskTier.CRITICAL else "normal",
        )


@lru_cache
def build_default_policy() -> NotificationPolicy:
    settings = get_settings()
    return NotificationPolicy(
        {
            PDMA: settings.pdma_email,
            EMERGENCY: settings.emergency_email,
            COMMUNITY: settings.community_email,
        }
    )


@lru_cache
def build_default_renderer() -> AlertRenderer:
    return AlertRenderer(dashboard_url=get_settings().dashboard_url)
