"""
Plate comparison use case.

Orchestrates the cross-check pipeline for each image:
1. Image storage
2. Vision-model call (plate-focus and damage-focus prompt sets)
3. Optional precision-OCR call (premium tier)
4. Outcome adaptation
5. Reconciliation and record building
6. History append
"""

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi.concurrency import run_in_threadpool

from app.application.history import ComparisonHistory
from app.core.config import Settings, get_settings
from app.core.logging import get_logger, image_log_context
from app.domain.models import (
    SOURCE_ORDER,
    VISION_SOURCES,
    ComparisonRecord,
    ModelTier,
    OutcomeStatus,
    RecognitionOutcome,
    SourceId,
)
from app.domain.services import ComparisonRecordBuilder, RecognitionSourceAdapter
from app.infrastructure.providers import (
    OcrSource,
    RecognitionSourceError,
    VisionSource,
    get_ocr_source,
    get_vision_source,
)
from app.infrastructure.storage.storage import ImageStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageInput:
    """One image submitted for comparison."""

    data: bytes
    file_name: str
    mime_type: str = "image/jpeg"
    image_ref: Any = None


class PlateComparisonUseCase:
    """
    Use case for cross-checking plates read by several recognizers.

    Images are processed one at a time; every image yields exactly one
    record, even when every upstream call failed.

    Example:
        use_case = PlateComparisonUseCase(settings)
        records = await use_case.process_batch(images, ModelTier.PREMIUM)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        vision_source: VisionSource | None = None,
        ocr_source: OcrSource | None = None,
        history: ComparisonHistory | None = None,
        storage: ImageStorage | None = None,
    ):
        """
        Initialize comparison use case.

        Args:
            settings: Provider configuration; defaults to the cached settings.
            vision_source: Optional custom vision source.
            ocr_source: Optional custom precision-OCR source. When omitted
                the configured one is used, if any.
            history: History the records are appended to.
            storage: Optional image storage; images are not kept without it.
        """
        self._settings = settings or get_settings()
        self._vision = vision_source or get_vision_source(self._settings)
        self._ocr = ocr_source if ocr_source is not None else get_ocr_source(self._settings)
        self._history = history if history is not None else ComparisonHistory()
        self._storage = storage

        self._adapter = RecognitionSourceAdapter()
        self._builder = ComparisonRecordBuilder()

    @property
    def history(self) -> ComparisonHistory:
        return self._history

    @property
    def ocr_configured(self) -> bool:
        return self._ocr is not None

    async def process_batch(
        self,
        images: Sequence[ImageInput],
        model_tier: ModelTier,
    ) -> list[ComparisonRecord]:
        """
        Process images sequentially, in input order.

        Args:
            images: Images to compare.
            model_tier: Provider set to use for every image.

        Returns:
            list: One record per image, in input order.
        """
        logger.info("batch_started", size=len(images), model_tier=model_tier.value)

        records = []
        for image in images:
            records.append(
                await self.process_image(
                    image.data,
                    image.file_name,
                    mime_type=image.mime_type,
                    model_tier=model_tier,
                    image_ref=image.image_ref,
                )
            )

        logger.info(
            "batch_completed",
            size=len(records),
            failed=sum(1 for r in records if self._all_failed(r.outcomes)),
        )
        return records

    async def process_image(
        self,
        image_bytes: bytes,
        file_name: str,
        mime_type: str = "image/jpeg",
        model_tier: ModelTier = ModelTier.STANDARD,
        image_ref: Any = None,
    ) -> ComparisonRecord:
        """
        Cross-check one image and append its record to the history.

        Never raises for upstream problems; they surface as FAILED
        outcomes in the returned record.

        Args:
            image_bytes: Raw image data.
            file_name: Original file name.
            mime_type: MIME type of the image.
            model_tier: Provider set to use.
            image_ref: Caller-owned image handle; when omitted and storage
                is configured, the stored path is used.

        Returns:
            ComparisonRecord: Record for this image.
        """
        with image_log_context(file_name, model_tier.value):
            logger.info("comparison_started", image_size=len(image_bytes))

            if image_ref is None and self._storage is not None:
                image_ref = await self._store(image_bytes, file_name)

            try:
                outcomes = await self._collect_outcomes(image_bytes, mime_type, model_tier)
            except Exception as e:
                logger.exception("comparison_unexpected_error", error=str(e))
                outcomes = [
                    self._adapter.failed(source_id, f"Unexpected error: {e}")
                    for source_id in SOURCE_ORDER
                ]

            record = self._builder.build(outcomes, file_name, model_tier, image_ref=image_ref)
            self._history.append(record)

            logger.info(
                "comparison_completed",
                record_id=record.id,
                consistency=record.consistency.value,
                vehicle_detected=record.vehicle_detected,
                chosen_plate=record.chosen_plate,
            )
            return record

    async def _collect_outcomes(
        self,
        image_bytes: bytes,
        mime_type: str,
        model_tier: ModelTier,
    ) -> list[RecognitionOutcome]:
        """Query the vision source, then the OCR source when allowed."""
        image_b64 = base64.b64encode(image_bytes).decode("ascii")

        vision_outcomes = await self._run_vision(image_b64, mime_type)
        ocr_outcome = await self._run_ocr(image_b64, mime_type, model_tier, vision_outcomes)

        return [*vision_outcomes, ocr_outcome]

    async def _run_vision(self, image_b64: str, mime_type: str) -> list[RecognitionOutcome]:
        try:
            analysis = await self._vision.analyze(image_b64, mime_type)
        except RecognitionSourceError as e:
            logger.warning("vision_call_failed", provider=self._vision.name, error=str(e))
            return [
                self._adapter.failed(source_id, str(e))
                for source_id in SOURCE_ORDER
                if source_id in VISION_SOURCES
            ]

        return [
            self._adapter.adapt_vision(source_id, analysis.for_source(source_id))
            for source_id in SOURCE_ORDER
            if source_id in VISION_SOURCES
        ]

    async def _run_ocr(
        self,
        image_b64: str,
        mime_type: str,
        model_tier: ModelTier,
        vision_outcomes: list[RecognitionOutcome],
    ) -> RecognitionOutcome:
        """
        Call the precision OCR, or explain why it was not called.

        When the vision call failed outright the OCR outcome is FAILED
        too, so an upstream outage shows up on every source.
        """
        source_id = SourceId.PRECISION_OCR

        if self._all_failed(vision_outcomes):
            return self._adapter.failed(source_id, "Vision analysis failed")
        if model_tier != ModelTier.PREMIUM:
            return self._adapter.skipped(source_id, "Premium tier required")
        if self._ocr is None:
            return self._adapter.skipped(source_id, "Precision OCR is not configured")
        if not any(o.status == OutcomeStatus.SUCCESS for o in vision_outcomes):
            return self._adapter.skipped(source_id, "No vehicle confirmed by vision analysis")

        try:
            raw_text = await self._ocr.recognize(image_b64, mime_type)
        except RecognitionSourceError as e:
            logger.warning("ocr_call_failed", provider=self._ocr.name, error=str(e))
            return self._adapter.failed(source_id, str(e))
        except Exception as e:
            # Vision outcomes already collected stay as they are
            logger.exception("ocr_call_unexpected_error", provider=self._ocr.name, error=str(e))
            return self._adapter.failed(source_id, f"Unexpected error: {e}")

        return self._adapter.adapt_ocr(raw_text)

    async def _store(self, image_bytes: bytes, file_name: str) -> str | None:
        try:
            return await run_in_threadpool(
                self._storage.save,
                image_bytes,
                file_name,
                datetime.now(timezone.utc),
            )
        except OSError as e:
            logger.error("image_save_failed", error=str(e))
            return None

    @staticmethod
    def _all_failed(outcomes: Sequence[RecognitionOutcome]) -> bool:
        return bool(outcomes) and all(o.status == OutcomeStatus.FAILED for o in outcomes)
