"""Application layer package - use cases and services."""

from app.application.comparison_pipeline import ImageInput, PlateComparisonUseCase
from app.application.export_service import CsvExporter
from app.application.history import ComparisonHistory

__all__ = [
    "PlateComparisonUseCase",
    "ImageInput",
    "ComparisonHistory",
    "CsvExporter",
]
