"""
CSV export of comparison history.

Output opens directly in Excel: UTF-8 with a byte-order mark and
Korean column headers.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import ClassVar, Iterable

from app.domain.models import ComparisonRecord

UTF8_BOM = "\ufeff"


@dataclass
class CsvExporter:
    """
    Renders comparison records as CSV.

    Example:
        >>> exporter = CsvExporter()
        >>> content = exporter.render(history.records)
        >>> exporter.file_name()
        '차량번호_분석_히스토리_20250101.csv'
    """

    # (row key, header)
    COLUMNS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("file_name", "파일명"),
        ("plate_focus", "분석 A 결과"),
        ("damage_focus", "분석 B 결과"),
        ("precision_ocr", "정밀 OCR"),
        ("consistency", "일치 여부"),
        ("vehicle_detected", "차량 인식"),
        ("model_tier", "모델 등급"),
        ("timestamp", "분석 시각"),
    )

    CONSISTENCY_LABELS: ClassVar[dict[str, str]] = {
        "consistent": "일치",
        "inconsistent": "불일치",
        "indeterminate": "판단 불가",
    }

    missing_value: str = "N/A"
    include_bom: bool = True

    def render(self, records: Iterable[ComparisonRecord]) -> str:
        """
        Render records as CSV text.

        Args:
            records: Records in the order they should appear.

        Returns:
            str: CSV content, BOM-prefixed when include_bom is set.
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow([header for _, header in self.COLUMNS])

        for record in records:
            row = record.to_row()
            writer.writerow([self._format(key, row.get(key)) for key, _ in self.COLUMNS])

        content = buffer.getvalue()
        return UTF8_BOM + content if self.include_bom else content

    def render_bytes(self, records: Iterable[ComparisonRecord]) -> bytes:
        return self.render(records).encode("utf-8")

    def file_name(self, day: date | None = None) -> str:
        """Download file name for the given day (today, UTC, by default)."""
        day = day or datetime.now(timezone.utc).date()
        return f"차량번호_분석_히스토리_{day.strftime('%Y%m%d')}.csv"

    def _format(self, key: str, value: object) -> str:
        if value is None or value == "":
            return self.missing_value
        if key == "consistency":
            return self.CONSISTENCY_LABELS.get(str(value), str(value))
        if key == "vehicle_detected":
            return "예" if value else "아니오"
        return str(value)
