"""AuditLog — append-only trail of administrative and corrective operations."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Uuid

from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    table_name = Column(String(100), nullable=False)
    operation = Column(String(100), nullable=False, index=True)
    record_id = Column(String(64), nullable=True, index=True)
    data = Column(JSONType, nullable=False, default=dict)
    actor = Column(String(255), nullable=False, default="system")
    severity = Column(String(20), nullable=False, default="info")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.operation} record={self.record_id}>"
