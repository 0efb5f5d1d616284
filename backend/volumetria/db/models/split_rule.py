"""
SplitRule — composite exam description → billable child descriptions.

Several rows share one `exame_original`; each row is one child with
its own resolved category.  Read-only from the pipeline's perspective.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from volumetria.db.models.base import Base, generate_uuid, utcnow


class SplitRule(Base):
    __tablename__ = "split_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    exame_original = Column(String(500), nullable=False, index=True)
    exame_quebrado = Column(String(500), nullable=False, index=True)
    categoria_quebrada = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SplitRule {self.exame_original!r} -> {self.exame_quebrado!r}>"
