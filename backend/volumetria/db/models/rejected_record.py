"""
RejectedRecord — a staged row that failed a rule irrecoverably.

Immutable once written; removed only in bulk by the retention task
or when an administrator resets the owning batch.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid

from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class RejectedRecord(Base):
    __tablename__ = "rejected_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    upload_batch_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    staged_record_id = Column(Uuid(as_uuid=True), nullable=True)
    row_number = Column(Integer, nullable=True)

    rule_code = Column(String(20), nullable=True)
    reason = Column(String(50), nullable=False, index=True)
    message = Column(Text, nullable=True)
    raw_payload = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RejectedRecord batch={self.upload_batch_id} reason={self.reason} rule={self.rule_code}>"
