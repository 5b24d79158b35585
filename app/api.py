"""HTTP route definitions for sensor data."""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.schemas import (
    AuditTransaction,
    DisplaySensor,
    HistoricalDataPoint,
    SensorHistoryPage,
    WebhookResponse,
)
from datastore.sensor_table import DatastoreError
from services.audit import audit_trail
from services.readings import (
    BatchValidationError,
    HistoryPageRequest,
    InvalidQueryError,
    ReadingsService,
    build_default_readings_service,
    validate_batch,
)
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


def get_readings_service() -> ReadingsService:
    return build_default_readings_service()


@router.get(
    "/data/current",
    response_model=List[DisplaySensor],
    summary="Latest reading and compliance status for every configured sensor.",
)
def current_readings(
    service: ReadingsService = Depends(get_readings_service),
) -> List[DisplaySensor]:
    return service.current_readings()


@router.get(
    "/data/history",
    response_model=List[HistoricalDataPoint],
    summary="Readings from the last N days bucketed by timestamp.",
)
def history(
    num_days: int = Query(..., gt=0, description="Lookback window in days."),
    service: ReadingsService = Depends(get_readings_service),
) -> List[HistoricalDataPoint]:
    try:
        return service.history(num_days)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/data/sensor-history",
    response_model=SensorHistoryPage,
    summary="Paginated, sortable and filterable reading history.",
)
def sensor_history(
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    sort_by: str = Query("recorded_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    sensor_type: Optional[str] = Query(None, alias="sensorType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    service: ReadingsService = Depends(get_readings_service),
) -> SensorHistoryPage:
    request = HistoryPageRequest(
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
        sensor_type=sensor_type,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        return service.sensor_history(request)
    except InvalidQueryError as exc:
        logger.info(
            "Rejected history query",
            extra={"page": page, "page_size": page_size, "reason": str(exc)},
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DatastoreError as exc:
        logger.exception("Sensor history query failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch sensor history",
        ) from exc


@router.get(
    "/data/audit-trail",
    response_model=List[AuditTransaction],
    summary="Mocked blockchain audit trail, newest first.",
)
async def audit_trail_entries() -> List[AuditTransaction]:
    return audit_trail()


@router.post(
    "/data/webhooks",
    response_model=WebhookResponse,
    summary="Ingest one reading or a batch of readings from the MQTT bridge.",
)
async def ingest_readings(
    request: Request,
    x_webhook_secret: Optional[str] = Header(None),
    service: ReadingsService = Depends(get_readings_service),
):
    expected = get_settings().webhook_secret
    if not expected or not x_webhook_secret or not secrets.compare_digest(
        x_webhook_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Rejected webhook call", extra={"reason": "bad secret"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON"
        ) from exc

    try:
        readings = validate_batch(payload)
    except BatchValidationError as exc:
        logger.info(
            "Rejected webhook batch",
            extra={"error_count": len(exc.errors), "reason": str(exc)},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": str(exc),
                "errors": [error.model_dump() for error in exc.errors],
            },
        )

    try:
        count = await run_in_threadpool(service.ingest, readings)
    except DatastoreError as exc:
        logger.exception("Failed to store webhook batch")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store sensor readings",
        ) from exc

    return WebhookResponse(
        success=True,
        message=f"Successfully inserted {count} sensor reading(s)",
        count=count,
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
