"""Domain layer package - recognition outcomes and reconciliation rules."""

from app.domain.models import (
    ComparisonRecord,
    Consistency,
    ModelTier,
    OutcomeStatus,
    RawVisionResult,
    RecognitionOutcome,
    ReconciliationVerdict,
    SourceId,
    VisionAnalysis,
)
from app.domain.services import (
    ComparisonRecordBuilder,
    CrossSourceReconciler,
    PlatePatternExtractor,
    PlateTextNormalizer,
    RecognitionSourceAdapter,
)

__all__ = [
    # Models
    "ComparisonRecord",
    "Consistency",
    "ModelTier",
    "OutcomeStatus",
    "RawVisionResult",
    "RecognitionOutcome",
    "ReconciliationVerdict",
    "SourceId",
    "VisionAnalysis",
    # Services
    "ComparisonRecordBuilder",
    "CrossSourceReconciler",
    "PlatePatternExtractor",
    "PlateTextNormalizer",
    "RecognitionSourceAdapter",
]
