"""
Client registry and client name aliases.

ClientRegistry drives the billing-type classification (CO vs NC) and
the client-existence validation.  ClientAlias maps the display names
found in extracts onto registered client names.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Uuid

from volumetria.core.constants import ClientStatus, ClientType
from volumetria.db.models.base import Base, JSONType, generate_uuid, utcnow


class ClientRegistry(Base):
    """Registered client and its billing profile."""

    __tablename__ = "client_registry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False, unique=True, index=True)
    client_type = Column(String(2), nullable=False, default=ClientType.CO.value)
    status = Column(String(20), nullable=False, default=ClientStatus.ACTIVE.value)

    # NC clients only: extra triggers that make an exam billable (NC-FT)
    billed_specialties = Column(JSONType, nullable=False, default=list)
    billed_descriptions = Column(JSONType, nullable=False, default=list)
    billed_physicians = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClientRegistry {self.name} type={self.client_type} status={self.status}>"


class ClientAlias(Base):
    """Alternative client name → registered name."""

    __tablename__ = "client_aliases"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid)
    alias = Column(String(255), nullable=False, index=True)
    canonical_name = Column(String(255), nullable=False)
    match_type = Column(String(10), nullable=False, default="exact")   # exact | contains

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClientAlias {self.alias!r} -> {self.canonical_name!r} ({self.match_type})>"
