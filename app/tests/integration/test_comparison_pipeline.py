"""
Integration tests for the plate comparison pipeline.

Runs PlateComparisonUseCase against mock recognition sources:
- Tier gating of the precision OCR
- Upstream failures
- Batch isolation and ordering
"""

import base64

import pytest

from app.application.comparison_pipeline import ImageInput, PlateComparisonUseCase
from app.application.history import ComparisonHistory
from app.core.config import Settings, get_settings
from app.domain.models import Consistency, ModelTier, OutcomeStatus, SourceId
from app.infrastructure.providers import (
    MockOcrSource,
    MockVisionSource,
    OcrSourceError,
    VisionSourceError,
)

OCR = SourceId.PRECISION_OCR


def _statuses(record) -> dict[SourceId, OutcomeStatus]:
    return {o.source_id: o.status for o in record.outcomes}


@pytest.fixture
def use_case(mock_vision_source, mock_ocr_source) -> PlateComparisonUseCase:
    return PlateComparisonUseCase(
        settings=get_settings(),
        vision_source=mock_vision_source,
        ocr_source=mock_ocr_source,
    )


class TestTierGating:
    """Tests for when the precision OCR is called."""

    @pytest.mark.asyncio
    async def test_standard_tier_skips_ocr(self, use_case, mock_ocr_source, sample_image_bytes):
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.STANDARD)

        assert mock_ocr_source.calls == 0
        assert _statuses(record)[OCR] == OutcomeStatus.SKIPPED
        assert record.consistency == Consistency.CONSISTENT
        assert record.model_tier == ModelTier.STANDARD

    @pytest.mark.asyncio
    async def test_premium_tier_cross_checks(self, use_case, mock_ocr_source, sample_image_bytes):
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert mock_ocr_source.calls == 1
        ocr = record.outcome_for(OCR)
        assert ocr.status == OutcomeStatus.SUCCESS
        assert ocr.plate == "12가3456"
        assert ocr.raw_text == "12가 3456"
        assert record.consistency == Consistency.CONSISTENT
        assert record.chosen_plate == "12가3456"

    @pytest.mark.asyncio
    async def test_premium_without_vision_success_skips_ocr(
        self, mock_ocr_source, make_analysis, sample_image_bytes
    ):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(
                make_analysis(("NOT_VEHICLE", None), ("EXCEPT", None))
            ),
            ocr_source=mock_ocr_source,
        )
        record = await use_case.process_image(sample_image_bytes, "cat.jpg", model_tier=ModelTier.PREMIUM)

        assert mock_ocr_source.calls == 0
        assert _statuses(record)[OCR] == OutcomeStatus.SKIPPED
        assert record.vehicle_detected is False

    @pytest.mark.asyncio
    async def test_premium_without_ocr_configured(self, mock_vision_source, sample_image_bytes):
        settings = Settings(secret_key="x" * 32, vision_provider="mock", ocr_provider="none")
        use_case = PlateComparisonUseCase(settings=settings, vision_source=mock_vision_source)

        assert not use_case.ocr_configured
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert _statuses(record)[OCR] == OutcomeStatus.SKIPPED
        assert "not configured" in record.outcome_for(OCR).message


class TestUpstreamFailures:
    """Tests for failures of the recognition sources."""

    @pytest.mark.asyncio
    async def test_vision_error_fails_every_source(self, mock_ocr_source, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(error=VisionSourceError("Azure OpenAI API key is invalid")),
            ocr_source=mock_ocr_source,
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert set(_statuses(record).values()) == {OutcomeStatus.FAILED}
        assert record.outcome_for(SourceId.PLATE_FOCUS).message == "Azure OpenAI API key is invalid"
        assert record.consistency == Consistency.INDETERMINATE
        assert mock_ocr_source.calls == 0

    @pytest.mark.asyncio
    async def test_ocr_error_keeps_vision_outcomes(self, mock_vision_source, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=mock_vision_source,
            ocr_source=MockOcrSource(error=OcrSourceError("Naver Clova OCR error (500)")),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        statuses = _statuses(record)
        assert statuses[SourceId.PLATE_FOCUS] == OutcomeStatus.SUCCESS
        assert statuses[OCR] == OutcomeStatus.FAILED
        assert record.consistency == Consistency.CONSISTENT

    @pytest.mark.asyncio
    async def test_unexpected_ocr_error_fails_ocr_only(self, mock_vision_source, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=mock_vision_source,
            ocr_source=MockOcrSource(error=KeyError(0)),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        statuses = _statuses(record)
        assert statuses[SourceId.PLATE_FOCUS] == OutcomeStatus.SUCCESS
        assert statuses[SourceId.DAMAGE_FOCUS] == OutcomeStatus.SUCCESS
        assert statuses[OCR] == OutcomeStatus.FAILED
        assert record.outcome_for(OCR).message.startswith("Unexpected error")
        assert record.consistency == Consistency.CONSISTENT

    @pytest.mark.asyncio
    async def test_unexpected_error_yields_failed_record(self, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(error=RuntimeError("boom")),
            ocr_source=MockOcrSource(),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg")

        assert len(record.outcomes) == 3
        assert set(_statuses(record).values()) == {OutcomeStatus.FAILED}
        assert "boom" in record.outcome_for(OCR).message

    @pytest.mark.asyncio
    async def test_missing_half_fails_that_source_only(self, make_analysis, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(make_analysis(("SUCCESS", "12가3456"), None)),
            ocr_source=MockOcrSource(),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        statuses = _statuses(record)
        assert statuses[SourceId.PLATE_FOCUS] == OutcomeStatus.SUCCESS
        assert statuses[SourceId.DAMAGE_FOCUS] == OutcomeStatus.FAILED
        assert statuses[OCR] == OutcomeStatus.SUCCESS


class TestReconciliationScenarios:
    """End-to-end reconciliation through the pipeline."""

    @pytest.mark.asyncio
    async def test_spaced_plate_is_consistent(self, make_analysis, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(make_analysis(("SUCCESS", "12가3456"), ("SUCCESS", "12가 3456"))),
            ocr_source=MockOcrSource("12가3456"),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert record.consistency == Consistency.CONSISTENT

    @pytest.mark.asyncio
    async def test_vision_misread_is_not_corrected(self, make_analysis, sample_image_bytes):
        """An extra leading digit from the vision model disagrees with the OCR plate."""
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(make_analysis(("SUCCESS", "1234가5678"), ("SUCCESS", None))),
            ocr_source=MockOcrSource("234가5678"),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert record.plate_for(SourceId.PLATE_FOCUS) == "1234가5678"
        assert record.plate_for(OCR) == "234가5678"
        assert record.consistency == Consistency.INCONSISTENT

    @pytest.mark.asyncio
    async def test_single_plate_is_indeterminate(self, make_analysis, sample_image_bytes):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(make_analysis(("SUCCESS", "34나5678"), ("SUCCESS", None))),
            ocr_source=MockOcrSource(),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.STANDARD)

        assert record.consistency == Consistency.INDETERMINATE

    @pytest.mark.asyncio
    async def test_ambiguous_ocr_text_disagrees(self, mock_vision_source, sample_image_bytes):
        """The longest OCR candidate is compared, even if it is noise."""
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=mock_vision_source,
            ocr_source=MockOcrSource("12가3456 광고 서울34나5678"),
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg", model_tier=ModelTier.PREMIUM)

        assert record.plate_for(OCR) == "서울34나5678"
        assert record.consistency == Consistency.INCONSISTENT


class TestBatchProcessing:
    """Tests for batch isolation and ordering."""

    @pytest.mark.asyncio
    async def test_failed_image_does_not_stop_batch(self, make_analysis):
        def analyze(image_b64: str):
            if base64.b64decode(image_b64) == b"image-2":
                raise VisionSourceError("upstream unavailable")
            return make_analysis()

        history = ComparisonHistory()
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=MockVisionSource(analyze),
            ocr_source=MockOcrSource(),
            history=history,
        )
        images = [ImageInput(f"image-{i}".encode(), f"{i}.jpg") for i in (1, 2, 3)]

        records = await use_case.process_batch(images, ModelTier.STANDARD)

        assert [r.file_name for r in records] == ["1.jpg", "2.jpg", "3.jpg"]
        assert set(_statuses(records[1]).values()) == {OutcomeStatus.FAILED}
        for record in (records[0], records[2]):
            assert _statuses(record)[SourceId.PLATE_FOCUS] == OutcomeStatus.SUCCESS
            assert record.consistency == Consistency.CONSISTENT

        assert history.records == tuple(records)

    @pytest.mark.asyncio
    async def test_history_appended_once_per_image(self, use_case, sample_image_bytes):
        await use_case.process_image(sample_image_bytes, "a.jpg")
        await use_case.process_image(sample_image_bytes, "b.jpg")

        assert [r.file_name for r in use_case.history] == ["a.jpg", "b.jpg"]

    @pytest.mark.asyncio
    async def test_stored_image_becomes_reference(
        self, mock_vision_source, mock_ocr_source, image_storage, sample_image_bytes
    ):
        use_case = PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=mock_vision_source,
            ocr_source=mock_ocr_source,
            storage=image_storage,
        )
        record = await use_case.process_image(sample_image_bytes, "car.jpg")

        assert record.image_ref is not None
        assert image_storage.resolve(record.image_ref).read_bytes() == sample_image_bytes

    @pytest.mark.asyncio
    async def test_caller_reference_kept(self, use_case, sample_image_bytes):
        record = await use_case.process_image(sample_image_bytes, "car.jpg", image_ref="upload-42")
        assert record.image_ref == "upload-42"
