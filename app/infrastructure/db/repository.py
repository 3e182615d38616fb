"""
Repository pattern implementations for data access.

Repositories abstract database operations and provide
a clean interface for the application layer.
"""

from datetime import timezone
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.domain.models import (
    ComparisonRecord,
    Consistency,
    ModelTier,
    OutcomeStatus,
    RecognitionOutcome,
    SourceId,
)
from app.infrastructure.db.models import ComparisonRecordDB, RecognitionOutcomeDB


class ComparisonRecordRepository:
    """
    Repository for comparison history.

    Records are inserted once and read back; there is no update or
    delete path.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    async def create(self, record: ComparisonRecord) -> ComparisonRecord:
        """
        Persist a comparison record with its outcomes.

        Args:
            record: Domain record to persist.

        Returns:
            ComparisonRecord: The same record.
        """
        db_record = ComparisonRecordDB(
            id=record.id,
            timestamp=record.timestamp,
            file_name=record.file_name,
            image_ref=None if record.image_ref is None else str(record.image_ref),
            vehicle_detected=record.vehicle_detected,
            consistency=record.consistency.value,
            model_tier=record.model_tier.value,
            outcomes=[
                RecognitionOutcomeDB(
                    position=position,
                    source_id=outcome.source_id.value,
                    status=outcome.status.value,
                    plate=outcome.plate,
                    message=outcome.message,
                    raw_text=outcome.raw_text,
                )
                for position, outcome in enumerate(record.outcomes)
            ],
        )
        self._session.add(db_record)
        await self._session.flush()

        return record

    async def get_by_id(self, record_id: str) -> ComparisonRecord | None:
        """
        Get comparison record by ID.

        Args:
            record_id: Record identifier.

        Returns:
            ComparisonRecord: Domain model if found, None otherwise.
        """
        stmt = (
            select(ComparisonRecordDB)
            .options(selectinload(ComparisonRecordDB.outcomes))
            .where(ComparisonRecordDB.id == record_id)
        )
        result = await self._session.execute(stmt)
        db_record = result.scalar_one_or_none()

        if db_record is None:
            return None

        return self._to_domain(db_record)

    async def list_recent(
        self,
        limit: int = 50,
        offset: int = 0,
        consistency: Consistency | None = None,
    ) -> Sequence[ComparisonRecord]:
        """
        List records, newest first, with optional consistency filter.

        Args:
            limit: Maximum records to return.
            offset: Pagination offset.
            consistency: Optional verdict filter.

        Returns:
            list: Matching records.
        """
        stmt = (
            select(ComparisonRecordDB)
            .options(selectinload(ComparisonRecordDB.outcomes))
            .order_by(ComparisonRecordDB.timestamp.desc(), ComparisonRecordDB.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        if consistency is not None:
            stmt = stmt.where(ComparisonRecordDB.consistency == consistency.value)

        result = await self._session.execute(stmt)
        return [self._to_domain(r) for r in result.scalars().all()]

    async def list_chronological(
        self,
        consistency: Consistency | None = None,
    ) -> Sequence[ComparisonRecord]:
        """All records, oldest first, for export."""
        stmt = (
            select(ComparisonRecordDB)
            .options(selectinload(ComparisonRecordDB.outcomes))
            .order_by(ComparisonRecordDB.timestamp.asc(), ComparisonRecordDB.created_at.asc())
        )

        if consistency is not None:
            stmt = stmt.where(ComparisonRecordDB.consistency == consistency.value)

        result = await self._session.execute(stmt)
        return [self._to_domain(r) for r in result.scalars().all()]

    async def count(self, consistency: Consistency | None = None) -> int:
        """Count stored records, optionally by verdict."""
        stmt = select(func.count()).select_from(ComparisonRecordDB)
        if consistency is not None:
            stmt = stmt.where(ComparisonRecordDB.consistency == consistency.value)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    def _to_domain(self, db_record: ComparisonRecordDB) -> ComparisonRecord:
        """Convert database model to domain model."""
        timestamp = db_record.timestamp
        # SQLite drops the offset
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return ComparisonRecord(
            id=db_record.id,
            timestamp=timestamp,
            file_name=db_record.file_name,
            vehicle_detected=db_record.vehicle_detected,
            outcomes=tuple(
                RecognitionOutcome(
                    source_id=SourceId(o.source_id),
                    status=OutcomeStatus(o.status),
                    plate=o.plate,
                    message=o.message,
                    raw_text=o.raw_text,
                )
                for o in db_record.outcomes
            ),
            consistency=Consistency(db_record.consistency),
            model_tier=ModelTier(db_record.model_tier),
            image_ref=db_record.image_ref,
        )
