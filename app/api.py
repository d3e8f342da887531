"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    AlertRecord,
    AlertStats,
    EmailTestRequest,
    EmailTestResponse,
    IngestResponse,
    InsightSummary,
    MLInsight,
    NodeSummary,
    NodeTrends,
    ResetResponse,
    RiskAssessment,
    SensorReadingIn,
    SensorReadingRecord,
    SystemOverview,
    ThresholdsModel,
    ThresholdsUpdate,
)
from models.records import RiskTier
from services.pipeline import IngestionPipeline, build_default_pipeline

router = APIRouter()


def get_pipeline() -> IngestionPipeline:
    return build_default_pipeline()


@router.post(
    "/sensor/data",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Ingest a reading and return its rule-based risk assessment.",
)
async def ingest_reading(
    payload: SensorReadingIn,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    reading = payload.to_reading(received_at=datetime.now(timezone.utc))
    assessment = pipeline.ingest(reading)
    return IngestResponse(assessment=assessment)


@router.get(
    "/sensor/nodes",
    response_model=List[NodeSummary],
    summary="List known nodes with their latest reading.",
)
async def list_nodes(pipeline: IngestionPipeline = Depends(get_pipeline)) -> List[NodeSummary]:
    return pipeline.list_nodes()


@router.get(
    "/sensor/nodes/{node_id}",
    response_model=List[SensorReadingRecord],
    summary="Fetch the most recent readings of a node, oldest first.",
)
async def get_node_readings(
    node_id: str,
    limit: int = Query(100, ge=1, le=1000),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> List[SensorReadingRecord]:
    readings = pipeline.get_readings(node_id, limit=limit)
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No readings found for node {node_id!r}.",
        )
    return readings


@router.post(
    "/sensor/reset",
    response_model=ResetResponse,
    summary="Clear every reading, assessment and alert.",
)
async def reset_system(pipeline: IngestionPipeline = Depends(get_pipeline)) -> ResetResponse:
    pipeline.reset_all()
    return ResetResponse(
        message="All sensor data and alerts have been cleared.",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/assessments/{node_id}",
    response_model=RiskAssessment,
    summary="Latest rule-based assessment for a node.",
)
async def get_assessment(
    node_id: str,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> RiskAssessment:
    try:
        return pipeline.get_assessment(node_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc


@router.get(
    "/ml/insights/{node_id}",
    response_model=MLInsight,
    summary="Statistical risk insight computed from a node's recent readings.",
)
async def get_insights(
    node_id: str,
    window_size: Optional[int] = Query(None, ge=3, le=500),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> MLInsight:
    try:
        return pipeline.get_insights(node_id, window_size=window_size)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/ml/summary",
    response_model=InsightSummary,
    summary="Insight summary across every node.",
)
async def get_insight_summary(
    window_size: Optional[int] = Query(None, ge=3, le=500),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> InsightSummary:
    return pipeline.summarize_insights(window_size=window_size)


@router.get(
    "/alerts",
    response_model=List[AlertRecord],
    summary="Recorded alerts, newest first.",
)
async def list_alerts(
    limit: int = Query(50, ge=1, le=500),
    risk_tier: Optional[RiskTier] = Query(None),
    node_id: Optional[str] = Query(None),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> List[AlertRecord]:
    return pipeline.list_alerts(limit=limit, risk_tier=risk_tier, node_id=node_id)


@router.get(
    "/alerts/active",
    response_model=List[AlertRecord],
    summary="HIGH and CRITICAL alerts raised in the last 24 hours.",
)
async def list_active_alerts(pipeline: IngestionPipeline = Depends(get_pipeline)) -> List[AlertRecord]:
    return pipeline.active_alerts()


@router.get(
    "/alerts/stats",
    response_model=AlertStats,
    summary="Alert counts by tier.",
)
async def get_alert_stats(pipeline: IngestionPipeline = Depends(get_pipeline)) -> AlertStats:
    return pipeline.alert_stats()


@router.get(
    "/analytics/overview",
    response_model=SystemOverview,
    summary="Node and reading counts with 24 hour averages.",
)
async def get_overview(pipeline: IngestionPipeline = Depends(get_pipeline)) -> SystemOverview:
    return pipeline.overview()


@router.get(
    "/analytics/trends/{node_id}",
    response_model=NodeTrends,
    summary="Hourly averages of a node's readings over the last N hours.",
)
async def get_node_trends(
    node_id: str,
    hours: int = Query(24, ge=1, le=720),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> NodeTrends:
    try:
        return pipeline.hourly_trends(node_id, hours=hours)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/settings/thresholds",
    response_model=ThresholdsModel,
    summary="Current rule-engine thresholds.",
)
async def get_thresholds(pipeline: IngestionPipeline = Depends(get_pipeline)) -> ThresholdsModel:
    return ThresholdsModel.from_thresholds(pipeline.thresholds)


@router.put(
    "/settings/thresholds",
    response_model=ThresholdsModel,
    summary="Update one or more thresholds; applies to the next reading.",
)
async def update_thresholds(
    payload: ThresholdsUpdate,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> ThresholdsModel:
    thresholds = pipeline.update_thresholds(
        temperature=payload.temperature,
        seismic=payload.seismic,
        water_level_increase_pct=payload.water_level_increase_pct,
    )
    return ThresholdsModel.from_thresholds(thresholds)


@router.post(
    "/settings/test-email",
    response_model=EmailTestResponse,
    summary="Send a sample alert email to verify delivery settings.",
)
def send_test_email(
    payload: EmailTestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> EmailTestResponse:
    report = pipeline.send_test_email(payload.recipient)
    if not report.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=report.error or "Failed to send test email.",
        )
    return EmailTestResponse(
        success=True,
        demo=report.demo,
        message=f"Test email sent to {payload.recipient}",
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
