"""Fire-and-forget fan-out of alert emails, one job per language."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import FrozenSet, Iterable, List, Optional, Set

from app.schemas import AssessmentMetrics, RiskAssessment
from models.records import RiskTier
from services.mailer import DeliveryReport, Mailer
from services.notifications import (
    SUPPORTED_LANGUAGES,
    AlertRenderer,
    NotificationPolicy,
    resolve_language,
)

logger = logging.getLogger(__name__)

TEST_SUBJECT = "Test Email - Project Barfani Alert System"


class NotificationDispatcher:
    """Renders and sends alerts on a worker pool.

    Every language is an independent job: a failure in one is logged and
    reported as a failed :class:`DeliveryReport`, never raised to the caller,
    and never retried.
    """

    def __init__(
        self,
        policy: NotificationPolicy,
        renderer: AlertRenderer,
        mailer: Mailer,
        languages: Iterable[str] = SUPPORTED_LANGUAGES,
        workers: int = 4,
    ) -> None:
        self.policy = policy
        self.renderer = renderer
        self.mailer = mailer
        self.languages = tuple(dict.fromkeys(resolve_language(lang) for lang in languages))
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notifier")
        self._futures: Set[Future[DeliveryReport]] = set()
        self._futures_lock = Lock()

    def dispatch(self, assessment: RiskAssessment) -> List[Future[DeliveryReport]]:
        recipients = self.policy.recipients_for(assessment.risk_tier)
        if not recipients:
            logger.info(
                "No email recipients for tier",
                extra={"node_id": assessment.node_id, "risk_tier": assessment.risk_tier},
            )
            return []

        submitted: List[Future[DeliveryReport]] = []
        for language in self.languages:
            try:
                future = self.executor.submit(self._deliver, assessment, language, recipients)
            except RuntimeError:
                logger.error(
                    "Notification executor is shut down; alert not sent",
                    extra={"node_id": assessment.node_id, "language": language},
                )
                continue
            with self._futures_lock:
                self._futures.add(future)
            future.add_done_callback(self._clear_future)
            submitted.append(future)
        return submitted

    def send_test(self, recipient: str) -> DeliveryReport:
        """Synchronously send a sample MEDIUM alert to ``recipient``."""
        sample = RiskAssessment(
            node_id="glacier_lake_01",
            timestamp=datetime.now(timezone.utc),
            risk_tier=RiskTier.MEDIUM,
            risk_score=30,
            risk_factors=[],
            metrics=AssessmentMetrics(
                temperature=5.2, seismic_activity=0.4, water_level=280.0, water_level_trend=0.0
            ),
            should_alert=False,
            alert_message="This is a test alert from Project Barfani monitoring system.",
        )
        rendered = replace(self.renderer.render(sample, "en"), subject=TEST_SUBJECT)
        try:
            report = self.mailer.send(rendered, [recipient])
        except Exception as exc:  # noqa: BLE001 - delivery backends raise anything
            logger.exception("Test email failed", extra={"reason": str(exc)})
            return DeliveryReport(success=False, recipients=(recipient,), language="en", error=str(exc))
        if not report.success:
            logger.warning("Test email failed", extra={"reason": report.error})
        return report

    def pending(self) -> List[Future[DeliveryReport]]:
        with self._futures_lock:
            return list(self._futures)

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted delivery has finished."""
        wait(self.pending(), timeout=timeout)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, future: Future[DeliveryReport]) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    def _deliver(
        self,
        assessment: RiskAssessment,
        language: str,
        recipients: FrozenSet[str],
    ) -> DeliveryReport:
        context = {
            "node_id": assessment.node_id,
            "risk_tier": assessment.risk_tier,
            "language": language,
            "recipient_count": len(recipients),
        }
        try:
            rendered = self.renderer.render(assessment, language)
            report = self.mailer.send(rendered, recipients)
        except Exception as exc:  # noqa: BLE001 - isolate one language's failure
            logger.exception("Alert email failed", extra={**context, "reason": str(exc)})
            return DeliveryReport(
                success=False,
                recipients=tuple(sorted(recipients)),
                language=language,
                error=str(exc),
            )

        if report.success:
            logger.info("Alert email sent", extra={**context, "status": "demo" if report.demo else "sent"})
        else:
            logger.warning("Alert email failed", extra={**context, "reason": report.error})
        return report
