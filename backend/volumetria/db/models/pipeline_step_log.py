"""
PipelineStepLog — one row per step per processed chunk.

Staging and the first background chunk both log chunk_index 0; the
execution_id tells the runs apart. metadata keeps what the step
reported (counts, stage, attempts).
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class PipelineStepLog(Base):
    """One row per step execution within a chunk of a batch."""

    __tablename__ = "pipeline_step_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    upload_batch_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("upload_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    execution_id = Column(String(64), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False, default=0)

    # ── Step identity ─────────────────────────
    step_index = Column(Integer, nullable=False)
    step_name = Column(String(100), nullable=False, index=True)

    # ── Status ────────────────────────────────
    status = Column(String(50), nullable=False, index=True)

    # ── Timing (UTC) ─────────────────────────
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # ── Error ─────────────────────────────────
    error_message = Column(Text, nullable=True)

    # ── Step output / metadata ────────────────
    metadata_ = Column("metadata", JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # ── Relationship ──────────────────────────
    upload_batch = relationship("UploadBatch", back_populates="step_logs")

    def __repr__(self) -> str:
        return f"<PipelineStepLog {self.step_name} chunk={self.chunk_index} status={self.status}>"
