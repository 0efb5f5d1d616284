"""
UploadBatch — one ingestion job and its status state machine.

Created when an upload is accepted; mutated only by the orchestrator,
the background phase and the watchdog.  `updated_at` doubles as the
heartbeat the watchdog reads to detect stuck jobs.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from volumetria.core.constants import UploadStatus
from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class UploadBatch(Base):
    """One row per ingestion job."""

    __tablename__ = "upload_batches"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)

    # ── File identity ─────────────────────────
    file_name = Column(String(500), nullable=False)
    file_path = Column(String(1000), nullable=True)
    source_type = Column(String(100), nullable=False, index=True)
    period_reference = Column(String(20), nullable=True, index=True)

    # ── Status / Progress ────────────────────
    status = Column(String(50), nullable=False, default=UploadStatus.PENDING.value, index=True)
    current_stage = Column(String(100), nullable=True)
    ruleset_version = Column(String(20), nullable=True)

    # ── Counters ─────────────────────────────
    records_staged = Column(Integer, nullable=False, default=0)
    records_processed = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)
    records_rejected = Column(Integer, nullable=False, default=0)
    records_excluded = Column(Integer, nullable=False, default=0)

    # ── Error ─────────────────────────────────
    # {"stage": ..., "message": ..., "chunk": ..., "at": ...}
    error_detail = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)

    # ── Timestamps (UTC) ─────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    staging_completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # ── Relationships ─────────────────────────
    step_logs = relationship(
        "PipelineStepLog",
        back_populates="upload_batch",
        cascade="all, delete-orphan",
        order_by="PipelineStepLog.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<UploadBatch {self.id} source={self.source_type} status={self.status} "
            f"inserted={self.records_inserted} rejected={self.records_rejected}>"
        )
