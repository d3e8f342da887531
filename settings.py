from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_TEMP_THRESHOLD_ENV = "TEMP_THRESHOLD"
_SEISMIC_THRESHOLD_ENV = "SEISMIC_THRESHOLD"
_WATER_INCREASE_ENV = "WATER_LEVEL_INCREASE_THRESHOLD"
_HISTORY_CAPACITY_ENV = "HISTORY_CAPACITY"
_HISTORY_MAX_NODES_ENV = "HISTORY_MAX_NODES"
_READINGS_TABLE_NAME_ENV = "READINGS_TABLE_NAME"
_READINGS_TABLE_PATH_ENV = "READINGS_TABLE_PATH"
_ALERTS_TABLE_NAME_ENV = "ALERTS_TABLE_NAME"
_ALERTS_TABLE_PATH_ENV = "ALERTS_TABLE_PATH"
_READINGS_PER_NODE_ENV = "READINGS_PER_NODE_LIMIT"
_INSIGHTS_WINDOW_ENV = "INSIGHTS_WINDOW_SIZE"
_EMAIL_PDMA_ENV = "ALERT_EMAIL_PDMA"
_EMAIL_EMERGENCY_ENV = "ALERT_EMAIL_EMERGENCY"
_EMAIL_COMMUNITY_ENV = "ALERT_EMAIL_COMMUNITY"
_LANGUAGES_ENV = "ALERT_LANGUAGES"
_SENDER_ENV = "ALERT_SENDER"
_SMTP_HOST_ENV = "SMTP_HOST"
_SMTP_PORT_ENV = "SMTP_PORT"
_SMTP_USER_ENV = "SMTP_USER"
_SMTP_PASSWORD_ENV = "SMTP_PASSWORD"
_SMTP_TLS_ENV = "SMTP_USE_TLS"
_DASHBOARD_URL_ENV = "DASHBOARD_URL"
_WORKER_COUNT_ENV = "NOTIFIER_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    temperature_threshold: float
    seismic_threshold: float
    water_level_increase_pct: float
    history_capacity: int
    history_max_nodes: int
    readings_table_name: str
    readings_table_path: Optional[str]
    alerts_table_name: str
    alerts_table_path: Optional[str]
    readings_per_node_limit: int
    insights_window_size: int
    pdma_email: str
    emergency_email: str
    community_email: str
    alert_languages: Tuple[str, ...]
    alert_sender: str
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    dashboard_url: str
    notifier_workers: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_positive_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "on"}:
        return True
    if candidate in {"0", "false", "no", "off"}:
        return False
    return default


def _read_languages(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_LANGUAGES_ENV)
    if value is None:
        return default
    languages = tuple(
        part.strip().lower() for part in value.split(",") if part.strip()
    )
    return languages or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        temperature_threshold=_read_float_env(_TEMP_THRESHOLD_ENV, 10.0),
        seismic_threshold=_read_float_env(_SEISMIC_THRESHOLD_ENV, 0.5),
        water_level_increase_pct=_read_float_env(_WATER_INCREASE_ENV, 20.0),
        history_capacity=_read_positive_int_env(_HISTORY_CAPACITY_ENV, 100),
        history_max_nodes=_read_positive_int_env(_HISTORY_MAX_NODES_ENV, 1000),
        readings_table_name=_read_str_env(_READINGS_TABLE_NAME_ENV, "sensor_readings"),
        readings_table_path=_read_optional_env(_READINGS_TABLE_PATH_ENV, None),
        alerts_table_name=_read_str_env(_ALERTS_TABLE_NAME_ENV, "alerts"),
        alerts_table_path=_read_optional_env(_ALERTS_TABLE_PATH_ENV, None),
        readings_per_node_limit=_read_positive_int_env(_READINGS_PER_NODE_ENV, 1000),
        insights_window_size=_read_positive_int_env(_INSIGHTS_WINDOW_ENV, 50),
        pdma_email=_read_str_env(_EMAIL_PDMA_ENV, "pdma@gilgit.gov.pk"),
        emergency_email=_read_str_env(_EMAIL_EMERGENCY_ENV, "emergency@barfani.pk"),
        community_email=_read_str_env(_EMAIL_COMMUNITY_ENV, "community@hunza.pk"),
        alert_languages=_read_languages(("en", "ur", "bs")),
        alert_sender=_read_str_env(_SENDER_ENV, "alerts@barfani.pk"),
        smtp_host=_read_optional_env(_SMTP_HOST_ENV, None),
        smtp_port=_read_positive_int_env(_SMTP_PORT_ENV, 587),
        smtp_user=_read_optional_env(_SMTP_USER_ENV, None),
        smtp_password=_read_optional_env(_SMTP_PASSWORD_ENV, None),
        smtp_use_tls=_read_bool_env(_SMTP_TLS_ENV, True),
        dashboard_url=_read_str_env(_DASHBOARD_URL_ENV, "http://localhost:3000"),
        notifier_workers=_read_positive_int_env(_WORKER_COUNT_ENV, 4),
        log_level=_read_log_level("INFO"),
    )
