"""
Domain services for plate extraction and cross-source reconciliation.

These services contain pure business logic with no infrastructure
dependencies. They can be easily unit tested.
"""

import re
import unicodedata
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Iterable, Sequence

from app.core.logging import get_logger
from app.domain.models import (
    MAX_PLATE_LENGTH,
    SOURCE_ORDER,
    ComparisonRecord,
    Consistency,
    ModelTier,
    OutcomeStatus,
    RawVisionResult,
    RecognitionOutcome,
    ReconciliationVerdict,
    SourceId,
)

logger = get_logger(__name__)


@dataclass
class PlateTextNormalizer:
    """
    Canonicalizes plate strings before comparison.

    Applies NFC composition (some OCR engines emit decomposed Hangul jamo),
    removes all whitespace and upper-cases Latin characters.

    Example:
        >>> normalizer = PlateTextNormalizer()
        >>> normalizer.normalize(" 12가 3456 ")
        '12가3456'
    """

    # Strings vision models return in place of a missing plate
    NULL_LIKE: ClassVar[frozenset[str]] = frozenset(
        {"", "NULL", "NONE", "N/A", "NA", "-", "UNKNOWN"}
    )

    def normalize(self, text: str | None) -> str | None:
        """
        Normalize a plate string.

        Args:
            text: Plate as reported by a source.

        Returns:
            str: Normalized plate, or None for empty / null-like input.
        """
        if text is None:
            return None

        normalized = unicodedata.normalize("NFC", text)
        normalized = re.sub(r"\s+", "", normalized).upper()

        if normalized in self.NULL_LIKE:
            return None
        return normalized

    def equals(self, left: str | None, right: str | None) -> bool:
        """Compare two plates after normalization."""
        return self.normalize(left) == self.normalize(right)


@dataclass
class PlatePatternExtractor:
    """
    Finds Korean license-plate substrings in free-form recognized text.

    Grammar: optional 1-2 Hangul syllable region/class prefix, optional
    space, 2-3 digits, one Hangul syllable, optional space, 4 digits.
    Covers both the old (2-digit) and new (3-digit) numbering schemes.

    Several plate-like substrings in one text are ambiguous: the longest
    one wins (first occurrence on ties). Pattern matching cannot tell a
    second real plate from OCR noise, so this can pick a false positive.

    Example:
        >>> extractor = PlatePatternExtractor()
        >>> extractor.extract("rental car 12가3456 express")
        '12가3456'
        >>> extractor.extract("no plate here") is None
        True
    """

    PLATE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(
        r"(?:[가-힣]{1,2})?\s?[0-9]{2,3}[가-힣]\s?[0-9]{4}"
    )

    def _raw_matches(self, text: str | None) -> list[str]:
        """Matched substrings exactly as found, including a leading space."""
        if not text:
            return []
        text = unicodedata.normalize("NFC", text)
        return [match.group(0) for match in self.PLATE_PATTERN.finditer(text)]

    def find_candidates(self, text: str | None) -> list[str]:
        """
        Find all non-overlapping plate-like substrings.

        Args:
            text: Arbitrary recognized text.

        Returns:
            list: Matches in order of occurrence, trimmed.
        """
        return [match.strip() for match in self._raw_matches(text)]

    def extract(self, text: str | None) -> str | None:
        """
        Select the most plausible plate in the text.

        Args:
            text: Arbitrary recognized text.

        Returns:
            str: Longest candidate with whitespace removed, or None if
                no candidate was found. Length is measured on the
                substring as matched, so a match that took a leading
                space counts one longer.
        """
        matches = self._raw_matches(text)
        if not matches:
            return None

        # max() keeps the first of equally long matches
        best = max(matches, key=len)

        if len(matches) > 1:
            logger.debug(
                "plate_candidates_ambiguous",
                candidates=[m.strip() for m in matches],
                chosen=best.strip(),
            )

        return re.sub(r"\s+", "", best)


@dataclass
class RecognitionSourceAdapter:
    """
    Converts provider-specific responses into RecognitionOutcome values.

    Never raises for upstream problems: malformed or unknown results
    become FAILED outcomes so one bad response cannot abort an image.

    Example:
        >>> adapter = RecognitionSourceAdapter()
        >>> raw = RawVisionResult(status="EXCEPT", plate=None, message="차량 사진이 아닙니다.")
        >>> adapter.adapt_vision(SourceId.DAMAGE_FOCUS, raw).status
        <OutcomeStatus.NOT_A_VEHICLE: 'not_a_vehicle'>
    """

    # Plate-focus prompt set vocabulary
    PLATE_FOCUS_STATUSES: ClassVar[dict[str, OutcomeStatus]] = {
        "SUCCESS": OutcomeStatus.SUCCESS,
        "NOT_VEHICLE": OutcomeStatus.NOT_A_VEHICLE,
        "VEHICLE_NO_PLATE": OutcomeStatus.VEHICLE_NO_PLATE,
    }

    # Damage-focus prompt set vocabulary
    DAMAGE_FOCUS_STATUSES: ClassVar[dict[str, OutcomeStatus]] = {
        "SUCCESS": OutcomeStatus.SUCCESS,
        "EXCEPT": OutcomeStatus.NOT_A_VEHICLE,
        "ISSUE": OutcomeStatus.DAMAGE_ISSUE,
    }

    def __post_init__(self) -> None:
        self._normalizer = PlateTextNormalizer()
        self._extractor = PlatePatternExtractor()

    def adapt_vision(
        self,
        source_id: SourceId,
        raw: RawVisionResult | dict[str, Any] | None,
    ) -> RecognitionOutcome:
        """
        Adapt one vision prompt-set result.

        Args:
            source_id: PLATE_FOCUS or DAMAGE_FOCUS.
            raw: Provider result, or None if the provider omitted it.

        Returns:
            RecognitionOutcome: Adapted outcome.
        """
        if not source_id.is_vision:
            raise ValueError(f"{source_id.value} is not a vision source")

        if raw is None:
            return self.failed(source_id, "Provider returned no result for this criteria set")

        if not isinstance(raw, RawVisionResult):
            try:
                raw = RawVisionResult.from_payload(raw)
            except ValueError as e:
                return self.failed(source_id, str(e))

        status = self._map_status(source_id, raw.status)
        if status is None:
            logger.warning(
                "unknown_vision_status",
                source=source_id.value,
                status=raw.status,
            )
            return self.failed(source_id, f"Unrecognized status tag: {raw.status}")

        return RecognitionOutcome(
            source_id=source_id,
            status=status,
            plate=self._normalize_vision_plate(raw.plate),
            message=raw.message,
        )

    def adapt_ocr(self, raw_text: str | None) -> RecognitionOutcome:
        """
        Adapt the precision-OCR text blob.

        Args:
            raw_text: All recognized text joined together.

        Returns:
            RecognitionOutcome: SUCCESS with the extracted plate, or
                VEHICLE_NO_PLATE when no plate pattern was found.
        """
        plate = self._extractor.extract(raw_text)

        if plate is None:
            return RecognitionOutcome(
                source_id=SourceId.PRECISION_OCR,
                status=OutcomeStatus.VEHICLE_NO_PLATE,
                plate=None,
                message="No plate pattern in recognized text",
                raw_text=raw_text,
            )

        return RecognitionOutcome(
            source_id=SourceId.PRECISION_OCR,
            status=OutcomeStatus.SUCCESS,
            plate=self._normalizer.normalize(plate),
            message="Plate extracted from recognized text",
            raw_text=raw_text,
        )

    def failed(self, source_id: SourceId, reason: str) -> RecognitionOutcome:
        """Outcome for an upstream call that failed or timed out."""
        return RecognitionOutcome(
            source_id=source_id,
            status=OutcomeStatus.FAILED,
            plate=None,
            message=reason,
        )

    def skipped(self, source_id: SourceId, reason: str) -> RecognitionOutcome:
        """Outcome for an upstream call deliberately not made."""
        return RecognitionOutcome(
            source_id=source_id,
            status=OutcomeStatus.SKIPPED,
            plate=None,
            message=reason,
        )

    def _map_status(self, source_id: SourceId, tag: str) -> OutcomeStatus | None:
        """Map a provider tag using the source's own vocabulary first."""
        key = tag.strip().upper()
        own, other = (
            (self.PLATE_FOCUS_STATUSES, self.DAMAGE_FOCUS_STATUSES)
            if source_id == SourceId.PLATE_FOCUS
            else (self.DAMAGE_FOCUS_STATUSES, self.PLATE_FOCUS_STATUSES)
        )
        return own.get(key) or other.get(key)

    def _normalize_vision_plate(self, plate: str | None) -> str | None:
        """
        Normalize a plate reported by a vision model.

        Only whitespace and case are canonicalized; misreads such as an
        extra digit are kept so they show up as disagreements. Values too
        long to be a plate are dropped.
        """
        normalized = self._normalizer.normalize(plate)
        if normalized is None:
            return None
        if len(normalized) > MAX_PLATE_LENGTH:
            logger.warning("vision_plate_discarded", length=len(normalized))
            return None
        return normalized


@dataclass
class CrossSourceReconciler:
    """
    Derives vehicle detection and plate consistency for one image.

    Vehicle detection favors recall: the image counts as a vehicle unless
    every vision source explicitly reports "not a vehicle". Plate
    consistency is strict equality after normalization; near-miss OCR
    errors surface as INCONSISTENT for human review.

    Example:
        >>> reconciler = CrossSourceReconciler()
        >>> verdict = reconciler.reconcile(outcomes)
        >>> verdict.consistency
        <Consistency.CONSISTENT: 'consistent'>
    """

    def __post_init__(self) -> None:
        self._normalizer = PlateTextNormalizer()

    def vehicle_detected(self, outcomes: Iterable[RecognitionOutcome]) -> bool:
        """
        Decide whether the image shows a vehicle.

        Args:
            outcomes: Adapted outcomes for one image.

        Returns:
            bool: False only if all vision outcomes are NOT_A_VEHICLE.
        """
        vision = [o for o in outcomes if o.source_id.is_vision]
        if not vision:
            return True
        return not all(o.status == OutcomeStatus.NOT_A_VEHICLE for o in vision)

    def consistency(self, outcomes: Iterable[RecognitionOutcome]) -> Consistency:
        """
        Compare the non-null plates reported across sources.

        Args:
            outcomes: Adapted outcomes for one image.

        Returns:
            Consistency: INDETERMINATE with fewer than two plates,
                CONSISTENT if all are equal, INCONSISTENT otherwise.
        """
        plates = [
            self._normalizer.normalize(o.plate)
            for o in outcomes
            if o.plate is not None
        ]
        plates = [p for p in plates if p is not None]

        if len(plates) < 2:
            return Consistency.INDETERMINATE
        if len(set(plates)) == 1:
            return Consistency.CONSISTENT
        return Consistency.INCONSISTENT

    def reconcile(self, outcomes: Sequence[RecognitionOutcome]) -> ReconciliationVerdict:
        """Compute both verdicts for one image."""
        return ReconciliationVerdict(
            vehicle_detected=self.vehicle_detected(outcomes),
            consistency=self.consistency(outcomes),
        )


@dataclass
class ComparisonRecordBuilder:
    """
    Assembles the immutable ComparisonRecord for one image.

    Missing sources simply show up as FAILED / SKIPPED outcomes; the
    builder succeeds for any non-empty outcome list.

    Example:
        >>> builder = ComparisonRecordBuilder()
        >>> record = builder.build(outcomes, "car.jpg", ModelTier.STANDARD)
    """

    reconciler: CrossSourceReconciler | None = None

    def __post_init__(self) -> None:
        if self.reconciler is None:
            self.reconciler = CrossSourceReconciler()

    def build(
        self,
        outcomes: Sequence[RecognitionOutcome],
        file_name: str,
        model_tier: ModelTier,
        image_ref: Any = None,
    ) -> ComparisonRecord:
        """
        Build a record with a fresh id and current UTC timestamp.

        Args:
            outcomes: One outcome per queried source.
            file_name: Original file name of the image.
            model_tier: Provider set used.
            image_ref: Opaque caller-owned image handle.

        Returns:
            ComparisonRecord: Fully populated record.

        Raises:
            ValueError: If outcomes is empty or repeats a source.
        """
        if not outcomes:
            raise ValueError("Cannot build a comparison record without outcomes")

        ordered = tuple(sorted(outcomes, key=lambda o: SOURCE_ORDER.index(o.source_id)))
        verdict = self.reconciler.reconcile(ordered)

        return ComparisonRecord(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            file_name=file_name,
            vehicle_detected=verdict.vehicle_detected,
            outcomes=ordered,
            consistency=verdict.consistency,
            model_tier=model_tier,
            image_ref=image_ref,
        )
