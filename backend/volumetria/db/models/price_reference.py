"""PriceReference — unit value per study description."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Uuid

from volumetria.db.models.base import Base, generate_uuid, utcnow


class PriceReference(Base):
    __tablename__ = "price_references"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    study_description = Column(String(500), nullable=False, index=True)
    unit_value = Column(Numeric(12, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PriceReference {self.study_description!r} value={self.unit_value} active={self.active}>"
