"""
jyt_admin.api.routers.health

Liveness and readiness probes.

`/readyz` runs a trivial query so a broken database fails readiness, and reports whether
the visual-flow scheduler loop is running in this process.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.api.deps import db_session

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request, session: AsyncSession = Depends(db_session)) -> dict[str, Any]:
    await session.execute(text("SELECT 1"))
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ready",
        "scheduler": "running" if scheduler is not None and scheduler.running else "disabled",
    }
