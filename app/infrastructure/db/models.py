"""
SQLAlchemy ORM models for database tables.

These models define the database schema and provide
persistence for comparison records.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.domain.models import MAX_PLATE_LENGTH


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ComparisonRecordDB(Base):
    """
    Database model for comparison records.

    One row per processed image. Rows are only ever inserted.
    """

    __tablename__ = "comparison_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    image_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vehicle_detected: Mapped[bool] = mapped_column(Boolean, nullable=False)
    consistency: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    model_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    # Outcomes in record order
    outcomes: Mapped[list["RecognitionOutcomeDB"]] = relationship(
        "RecognitionOutcomeDB",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="RecognitionOutcomeDB.position",
    )

    __table_args__ = (
        Index("ix_comparison_records_time_consistency", "timestamp", "consistency"),
    )

    def __repr__(self) -> str:
        return f"<ComparisonRecord(file={self.file_name}, consistency={self.consistency})>"


class RecognitionOutcomeDB(Base):
    """
    Database model for one source's outcome within a record.
    """

    __tablename__ = "recognition_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("comparison_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    source_id: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    plate: Mapped[str | None] = mapped_column(String(MAX_PLATE_LENGTH), nullable=True, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    record: Mapped["ComparisonRecordDB"] = relationship(
        "ComparisonRecordDB",
        back_populates="outcomes",
    )

    __table_args__ = (
        UniqueConstraint("record_id", "source_id", name="uq_outcome_record_source"),
    )

    def __repr__(self) -> str:
        return f"<RecognitionOutcome(source={self.source_id}, status={self.status})>"
