"""
ExamCatalog — cadastral lookup keyed by study description.

Source of the authoritative modality, specialty and category for
known exams.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from volumetria.db.models.base import Base, generate_uuid, utcnow


class ExamCatalog(Base):
    __tablename__ = "exam_catalog"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    study_description = Column(String(500), nullable=False, unique=True, index=True)
    modality = Column(String(20), nullable=True)
    specialty = Column(String(100), nullable=True)
    category = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ExamCatalog {self.study_description!r} {self.modality}/{self.specialty}/{self.category}>"
