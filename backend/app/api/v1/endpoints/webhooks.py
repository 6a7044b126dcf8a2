"""Acquisition webhook endpoints for Modality Ingest.

Receives notifications from modalities, DICOM routers and the RIS, hands
the raw body to the ingestion pipeline, and maps the outcome onto an HTTP
status code so senders can apply their retry policy.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import audit_logger
from app.models.base import async_session_maker, get_db
from app.models.image import Image
from app.models.patient import Patient
from app.models.report import Report, ReportStatus
from app.models.series import Series
from app.models.study import Study
from app.services.ingest import IngestionPipeline, emit_diagnostics

router = APIRouter()

INGEST_OUTCOMES = Counter(
    "modality_ingest_notifications_total",
    "Acquisition notifications processed",
    ["result"],
)

# Outcome error kind -> HTTP status
ERROR_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "dependency": status.HTTP_424_FAILED_DEPENDENCY,
    "persistence": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class IngestionStats(BaseModel):
    """Totals of ingested records."""

    total_patients: int = Field(0, description="Number of patients")
    total_studies: int = Field(0, description="Number of studies")
    total_series: int = Field(0, description="Number of series")
    total_images: int = Field(0, description="Number of images")
    pending_reports: int = Field(0, description="Reports still awaiting a radiologist")
    recent_images: int = Field(0, description="Images received in the last 24 hours")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    """Pipeline bound to the application's session factory."""
    session_maker = getattr(request.app.state, "db_session_maker", async_session_maker)
    return IngestionPipeline.from_session_maker(session_maker)


async def collect_stats(db: AsyncSession) -> IngestionStats:
    """Count ingested records."""
    since = datetime.now(timezone.utc) - timedelta(hours=24)

    async def count(query) -> int:
        return int((await db.execute(query)).scalar_one())

    return IngestionStats(
        total_patients=await count(select(func.count(Patient.id))),
        total_studies=await count(select(func.count(Study.id))),
        total_series=await count(select(func.count(Series.id))),
        total_images=await count(select(func.count(Image.id))),
        pending_reports=await count(
            select(func.count(Report.id)).where(Report.status == ReportStatus.PENDING)
        ),
        recent_images=await count(select(func.count(Image.id)).where(Image.created_at >= since)),
    )


@router.post("/dicom")
async def receive_dicom_notification(
    request: Request,
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> JSONResponse:
    """Ingest one acquisition notification.

    The body is passed through untouched; decoding failures are reported
    as validation errors by the pipeline itself.
    """
    body = await request.body()
    outcome = await pipeline.ingest(body)

    emit_diagnostics(outcome, source="webhook")
    audit_logger.log_ingestion(
        source="webhook",
        identifiers=outcome.identifiers,
        created=outcome.created_entities(),
        success=outcome.success,
        error_kind=outcome.error_kind,
    )
    INGEST_OUTCOMES.labels(result=outcome.error_kind or "success").inc()

    status_code = (
        status.HTTP_200_OK
        if outcome.success
        else ERROR_STATUS.get(outcome.error_kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(outcome.to_dict()))


@router.get("/dicom/stats", response_model=IngestionStats)
async def get_ingestion_stats(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> IngestionStats:
    """Totals of ingested patients, studies, series, images and pending reports."""
    return await collect_stats(db)
