"""
Plate comparison API routes.

Provides endpoints for submitting vehicle photos for cross-checking
and for browsing and exporting the comparison history.
"""

from datetime import datetime
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, File, HTTPException, Path, Query, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import (
    AppSettings,
    ComparisonUseCase,
    Exporter,
    RateLimited,
    RecordRepository,
    Tier,
)
from app.application.comparison_pipeline import ImageInput
from app.core.logging import get_logger
from app.domain.models import (
    ComparisonRecord,
    Consistency,
    ModelTier,
    OutcomeStatus,
    RecognitionOutcome,
    SourceId,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/comparisons", tags=["comparisons"])


class OutcomeResponse(BaseModel):
    """One source's outcome within a record."""

    source_id: SourceId
    status: OutcomeStatus
    plate: str | None = Field(default=None, examples=["12가3456"])
    message: str = ""
    raw_text: str | None = None

    @classmethod
    def from_domain(cls, outcome: RecognitionOutcome) -> "OutcomeResponse":
        return cls(
            source_id=outcome.source_id,
            status=outcome.status,
            plate=outcome.plate,
            message=outcome.message,
            raw_text=outcome.raw_text,
        )


class ComparisonRecordResponse(BaseModel):
    """Response model for a comparison record."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    timestamp: datetime
    file_name: str
    image_ref: str | None = None
    vehicle_detected: bool
    consistency: Consistency
    model_tier: ModelTier
    chosen_plate: str | None = Field(
        default=None,
        description="Plate to present: precision OCR first, then plate-focus, then damage-focus",
    )
    outcomes: list[OutcomeResponse]

    @classmethod
    def from_domain(cls, record: ComparisonRecord) -> "ComparisonRecordResponse":
        return cls(
            id=record.id,
            timestamp=record.timestamp,
            file_name=record.file_name,
            image_ref=None if record.image_ref is None else str(record.image_ref),
            vehicle_detected=record.vehicle_detected,
            consistency=record.consistency,
            model_tier=record.model_tier,
            chosen_plate=record.chosen_plate,
            outcomes=[OutcomeResponse.from_domain(o) for o in record.outcomes],
        )


class ComparisonBatchResponse(BaseModel):
    """Response for a processed batch."""

    model_config = ConfigDict(protected_namespaces=())

    model_tier: ModelTier
    count: int
    records: list[ComparisonRecordResponse]


class ComparisonListResponse(BaseModel):
    """Response for listing the comparison history."""

    records: list[ComparisonRecordResponse]
    count: int
    total: int


@router.post(
    "",
    response_model=ComparisonBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Cross-check vehicle plates",
    description="Upload one or more vehicle photos. Each image is analyzed by the vision "
    "model and, in the premium tier, cross-checked by the precision OCR.",
    responses={
        201: {"description": "Batch processed; one record per image"},
        400: {"description": "Invalid upload"},
        401: {"description": "Invalid premium token"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def create_comparisons(
    files: Annotated[list[UploadFile], File(description="Vehicle photos")],
    use_case: ComparisonUseCase,
    repository: RecordRepository,
    settings: AppSettings,
    model_tier: Tier,
    _: RateLimited,
) -> ComparisonBatchResponse:
    """
    Process a batch of images in upload order.

    Upstream failures never fail the request; they show up as FAILED
    outcomes on the affected records.

    **Premium tier**: send `Authorization: Bearer <token>` from
    `/premium/unlock`.
    """
    if not files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one image is required",
        )
    if len(files) > settings.max_batch_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many images; the limit is {settings.max_batch_size} per batch",
        )

    images = [await _read_image(upload, settings.max_upload_bytes) for upload in files]

    records = await use_case.process_batch(images, model_tier)

    for record in records:
        await repository.create(record)

    logger.info(
        "comparisons_created",
        count=len(records),
        model_tier=model_tier.value,
    )

    return ComparisonBatchResponse(
        model_tier=model_tier,
        count=len(records),
        records=[ComparisonRecordResponse.from_domain(r) for r in records],
    )


@router.get(
    "",
    response_model=ComparisonListResponse,
    summary="List comparison history",
    description="Get comparison records, newest first, optionally filtered by consistency.",
)
async def list_comparisons(
    repository: RecordRepository,
    _: RateLimited,
    consistency: Consistency | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ComparisonListResponse:
    """List comparison records."""
    records = await repository.list_recent(limit=limit, offset=offset, consistency=consistency)
    total = await repository.count(consistency=consistency)

    return ComparisonListResponse(
        records=[ComparisonRecordResponse.from_domain(r) for r in records],
        count=len(records),
        total=total,
    )


@router.get(
    "/export",
    summary="Export comparison history",
    description="Download the comparison history as an Excel-compatible CSV file.",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def export_comparisons(
    repository: RecordRepository,
    exporter: Exporter,
    _: RateLimited,
    consistency: Consistency | None = None,
) -> Response:
    """Render the history, oldest first, as CSV."""
    records = await repository.list_chronological(consistency=consistency)
    file_name = exporter.file_name()

    logger.info("comparisons_exported", count=len(records))

    return Response(
        content=exporter.render_bytes(records),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}",
        },
    )


@router.get(
    "/{record_id}",
    response_model=ComparisonRecordResponse,
    summary="Get comparison record",
    responses={404: {"description": "Record not found"}},
)
async def get_comparison(
    record_id: Annotated[str, Path(description="Record identifier")],
    repository: RecordRepository,
    _: RateLimited,
) -> ComparisonRecordResponse:
    """Get a single comparison record."""
    record = await repository.get_by_id(record_id)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Comparison record not found",
        )

    return ComparisonRecordResponse.from_domain(record)


async def _read_image(upload: UploadFile, max_bytes: int) -> ImageInput:
    """Validate and read one uploaded image."""
    file_name = upload.filename or "image"

    if not upload.content_type or not upload.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type for {file_name}. Please upload an image.",
        )

    data = await upload.read()

    if len(data) == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Empty image file: {file_name}",
        )
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Image {file_name} exceeds the {max_bytes} byte limit",
        )

    return ImageInput(data=data, file_name=file_name, mime_type=upload.content_type)
