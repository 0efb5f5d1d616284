"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from volumetria.db.session import get_db as _get_db


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session."""
    async for session in _get_db():
        yield session


async def get_actor(x_actor: str | None = Header(None)) -> str:
    """Who to record in audit rows; set by the calling back-office."""
    return (x_actor or "api").strip() or "api"
