"""
De-para tables consumed by the rule engine.

    PriorityMapping   — raw priority text → canonical priority
    SpecialtyMapping  — specialty synonym → authoritative specialty,
                        optionally restricted to one modality
    PhysicianAlias    — physician name variant → canonical name
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Uuid

from volumetria.db.models.base import Base, generate_uuid, utcnow


class PriorityMapping(Base):
    __tablename__ = "priority_mappings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    raw_value = Column(String(100), nullable=False, unique=True)
    canonical_value = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class SpecialtyMapping(Base):
    __tablename__ = "specialty_mappings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    source_specialty = Column(String(100), nullable=False, index=True)
    target_specialty = Column(String(100), nullable=False)
    modality = Column(String(20), nullable=True)    # NULL = any modality
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class PhysicianAlias(Base):
    __tablename__ = "physician_aliases"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    alias = Column(String(255), nullable=False, unique=True)
    canonical_name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
