"""
In-memory comparison history.

Append-only and ordered: records appear in the order images finished
processing and are never removed or replaced.
"""

from typing import Any, Iterator

from app.domain.models import ComparisonRecord, Consistency


class ComparisonHistory:
    """
    Ordered, append-only collection of comparison records.

    Example:
        history = ComparisonHistory()
        history.append(record)
        rows = history.to_rows()
    """

    def __init__(self, records: list[ComparisonRecord] | None = None):
        self._records: list[ComparisonRecord] = list(records or [])
        self._ids: set[str] = {r.id for r in self._records}

    def append(self, record: ComparisonRecord) -> None:
        """
        Add a finished record to the end of the history.

        Raises:
            ValueError: If a record with the same id was already appended.
        """
        if record.id in self._ids:
            raise ValueError(f"Record {record.id} is already in the history")
        self._records.append(record)
        self._ids.add(record.id)

    def get(self, record_id: str) -> ComparisonRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def filter(self, consistency: Consistency) -> list[ComparisonRecord]:
        """Records with the given consistency verdict, in history order."""
        return [r for r in self._records if r.consistency == consistency]

    def to_rows(self) -> list[dict[str, Any]]:
        """Flatten every record for tabular export."""
        return [record.to_row() for record in self._records]

    @property
    def records(self) -> tuple[ComparisonRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ComparisonRecord]:
        return iter(tuple(self._records))
