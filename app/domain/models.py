"""
Domain models for the Vehicle Plate Cross-Check Service.

These are pure domain objects with no infrastructure dependencies.
They represent the recognition outcomes reported by each upstream
source and the comparison record built from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceId(str, Enum):
    """
    Identity of an upstream recognizer.

    PLATE_FOCUS and DAMAGE_FOCUS are the two prompt sets evaluated by the
    vision model; PRECISION_OCR is the dedicated text-recognition service.
    """

    PLATE_FOCUS = "plate_focus"
    DAMAGE_FOCUS = "damage_focus"
    PRECISION_OCR = "precision_ocr"

    @property
    def is_vision(self) -> bool:
        """Whether this source is one of the vision-model prompt sets."""
        return self in VISION_SOURCES


VISION_SOURCES = frozenset({SourceId.PLATE_FOCUS, SourceId.DAMAGE_FOCUS})

# Canonical outcome order within a record
SOURCE_ORDER = (SourceId.PLATE_FOCUS, SourceId.DAMAGE_FOCUS, SourceId.PRECISION_OCR)

# Longest plate value kept from a source
MAX_PLATE_LENGTH = 64


class OutcomeStatus(str, Enum):
    """
    Judgment reported by one source for one image.

    FAILED covers upstream errors and timeouts; SKIPPED means the call
    was deliberately not made (tier gating, no vehicle confirmed).
    """

    SUCCESS = "success"
    NOT_A_VEHICLE = "not_a_vehicle"
    VEHICLE_NO_PLATE = "vehicle_no_plate"
    DAMAGE_ISSUE = "damage_issue"
    FAILED = "failed"
    SKIPPED = "skipped"


class Consistency(str, Enum):
    """Agreement of the plate values reported across sources."""

    CONSISTENT = "consistent"
    INCONSISTENT = "inconsistent"
    INDETERMINATE = "indeterminate"


class ModelTier(str, Enum):
    """
    Upstream provider set used for an image.

    STANDARD: vision model only.
    PREMIUM: vision model plus the precision-OCR cross-check.
    """

    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True)
class RawVisionResult:
    """
    Provider-shaped result of one vision prompt set.

    Attributes:
        status: Provider status tag (e.g. "SUCCESS", "NOT_VEHICLE", "EXCEPT").
        plate: Plate string as reported, or None.
        message: Human-readable message from the provider.
    """

    status: str
    plate: str | None
    message: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "RawVisionResult":
        """
        Build from a decoded JSON object.

        Raises:
            ValueError: If the payload is not an object with a status tag.
        """
        if not isinstance(payload, dict) or not payload.get("status"):
            raise ValueError(f"Malformed vision result: {payload!r}")
        plate = payload.get("plate")
        return cls(
            status=str(payload["status"]),
            plate=None if plate is None else str(plate),
            message=str(payload.get("message") or ""),
        )


@dataclass(frozen=True)
class VisionAnalysis:
    """
    Both prompt-set results returned by a single vision-model call.

    A half is None when the provider omitted it or sent it malformed.
    """

    plate_focus: RawVisionResult | None
    damage_focus: RawVisionResult | None

    def for_source(self, source_id: SourceId) -> RawVisionResult | None:
        """Return the raw result produced by the given prompt set."""
        if source_id == SourceId.PLATE_FOCUS:
            return self.plate_focus
        if source_id == SourceId.DAMAGE_FOCUS:
            return self.damage_focus
        raise ValueError(f"{source_id.value} is not a vision source")


@dataclass(frozen=True)
class RecognitionOutcome:
    """
    One source's judgment for one image.

    Immutable after creation.

    Attributes:
        source_id: Which recognizer produced it.
        status: Outcome status.
        plate: Normalized plate, or None.
        message: Human-readable explanation.
        raw_text: Verbatim recognized text (precision OCR only).
    """

    source_id: SourceId
    status: OutcomeStatus
    plate: str | None = None
    message: str = ""
    raw_text: str | None = None

    @property
    def has_plate(self) -> bool:
        """Whether this outcome carries a plate value."""
        return bool(self.plate)


@dataclass(frozen=True)
class ReconciliationVerdict:
    """Cross-source verdict for one image."""

    vehicle_detected: bool
    consistency: Consistency


@dataclass(frozen=True)
class ComparisonRecord:
    """
    Final, immutable result for one processed image.

    Corrections require building a new record.

    Attributes:
        id: Unique record identifier.
        timestamp: When the record was built (UTC).
        image_ref: Opaque handle to the image, owned by the caller.
        file_name: Original upload file name.
        vehicle_detected: Consensus of the vision sources.
        outcomes: One outcome per queried source, in source order.
        consistency: Plate agreement verdict.
        model_tier: Provider set used.
    """

    id: str
    timestamp: datetime
    file_name: str
    vehicle_detected: bool
    outcomes: tuple[RecognitionOutcome, ...]
    consistency: Consistency
    model_tier: ModelTier
    image_ref: Any = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate the outcome set."""
        if not self.outcomes:
            raise ValueError("A comparison record needs at least one outcome")
        seen = [outcome.source_id for outcome in self.outcomes]
        if len(seen) != len(set(seen)):
            raise ValueError(f"Duplicate source in outcomes: {[s.value for s in seen]}")

    def outcome_for(self, source_id: SourceId) -> RecognitionOutcome | None:
        """Return the outcome reported by a source, if it was queried."""
        for outcome in self.outcomes:
            if outcome.source_id == source_id:
                return outcome
        return None

    def plate_for(self, source_id: SourceId) -> str | None:
        """Return the plate reported by a source, if any."""
        outcome = self.outcome_for(source_id)
        return outcome.plate if outcome else None

    @property
    def chosen_plate(self) -> str | None:
        """
        Plate to present for this image.

        The agreed value when consistent; otherwise the precision-OCR
        plate, then plate-focus, then damage-focus.
        """
        for source_id in (SourceId.PRECISION_OCR, SourceId.PLATE_FOCUS, SourceId.DAMAGE_FOCUS):
            plate = self.plate_for(source_id)
            if plate:
                return plate
        return None

    def to_row(self) -> dict[str, Any]:
        """Flatten into one tabular row for export."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "file_name": self.file_name,
            "plate_focus": self.plate_for(SourceId.PLATE_FOCUS),
            "damage_focus": self.plate_for(SourceId.DAMAGE_FOCUS),
            "precision_ocr": self.plate_for(SourceId.PRECISION_OCR),
            "consistency": self.consistency.value,
            "vehicle_detected": self.vehicle_detected,
            "model_tier": self.model_tier.value,
        }
