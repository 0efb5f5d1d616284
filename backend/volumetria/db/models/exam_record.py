"""
ExamRecord — the canonical record store.

One billable imaging exam event after rule application, splitting,
pricing and exclusion filtering.  Rows are scoped by `upload_batch_id`
so rollback and per-rule re-runs never touch other batches.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)

from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class ExamRecord(Base):
    """Committed exam record."""

    __tablename__ = "exam_records"
    __table_args__ = (
        Index("ix_exam_records_source_period", "source_file", "period_reference"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)

    # ── Provenance ────────────────────────────
    upload_batch_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    staged_record_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    source_file = Column(String(100), nullable=False)
    period_reference = Column(String(20), nullable=True)

    # ── Identity ──────────────────────────────
    client_name = Column(String(255), nullable=False, index=True)
    patient_name = Column(String(255), nullable=False)
    patient_code = Column(String(100), nullable=True)
    accession_number = Column(String(100), nullable=True)
    physician = Column(String(255), nullable=True)

    # ── Exam attributes ───────────────────────
    study_description = Column(String(500), nullable=False, index=True)
    modality = Column(String(20), nullable=False)
    specialty = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False)
    priority = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # ── Dates ─────────────────────────────────
    realization_date = Column(Date, nullable=True)
    realization_time = Column(String(8), nullable=True)
    report_date = Column(Date, nullable=True)
    report_time = Column(String(8), nullable=True)

    # ── Billing ───────────────────────────────
    billing_type = Column(String(10), nullable=False)
    unit_value = Column(Numeric(12, 2), nullable=True)   # NULL = unresolved
    price_status = Column(String(30), nullable=False)

    # ── Rule bookkeeping ──────────────────────
    applied_rules = Column(JSONType, nullable=False, default=list)
    ruleset_version = Column(String(20), nullable=True)
    client_unresolved = Column(Boolean, nullable=False, default=False)
    split_from = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ExamRecord {self.study_description!r} client={self.client_name} billing={self.billing_type}>"
