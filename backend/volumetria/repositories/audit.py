"""AuditLog repository — append-only."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.db.models.audit_log import AuditLog


async def write_audit(
    db: AsyncSession,
    *,
    table_name: str,
    operation: str,
    record_id: str | None = None,
    data: dict[str, Any] | None = None,
    actor: str = "system",
    severity: str = "info",
) -> AuditLog:
    entry = AuditLog(
        table_name=table_name,
        operation=operation,
        record_id=record_id,
        data=data or {},
        actor=actor,
        severity=severity,
    )
    db.add(entry)
    await db.flush()
    return entry
