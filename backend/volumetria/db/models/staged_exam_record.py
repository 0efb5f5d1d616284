"""
StagedExamRecord — the Raw Record Store.

One row per uploaded exam record, tagged with its upload batch and a
per-record processing status.  The original row is kept verbatim in
`raw_payload` so rejected or failed rows can be replayed.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Uuid

from volumetria.core.constants import StagedRecordStatus
from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class StagedExamRecord(Base):
    """Raw staged row awaiting the background phase."""

    __tablename__ = "staged_exam_records"
    __table_args__ = (
        Index("ix_staged_batch_status", "upload_batch_id", "processing_status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    upload_batch_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("upload_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    row_number = Column(Integer, nullable=False)

    raw_payload = Column(JSONType, nullable=False, default=dict)

    processing_status = Column(
        String(20), nullable=False, default=StagedRecordStatus.PENDING.value
    )
    exclusion_rule = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<StagedExamRecord batch={self.upload_batch_id} row={self.row_number} status={self.processing_status}>"
