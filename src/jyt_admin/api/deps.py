"""
jyt_admin.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, DB sessions and outbound clients.
- Build a `WorkflowRunner` bound to the request session and the caller identity.
- Encapsulate app.state access patterns (engine/sessionmaker/clients).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jyt_admin.auth.deps import get_principal
from jyt_admin.auth.models import Principal
from jyt_admin.errors import AppError, ErrorType
from jyt_admin.settings import Settings, get_settings
from jyt_admin.storage.base import StorageBackend
from jyt_admin.workflows.context import Clients
from jyt_admin.workflows.runner import WorkflowRunner


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created on app startup in `jyt_admin.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commits happen inside the workflow runner.
    async with session_factory() as session:
        yield session


def clients_from_app(request: Request) -> Clients:
    return request.app.state.clients  # type: ignore[attr-defined]


def storage_from_app(clients: Clients = Depends(clients_from_app)) -> StorageBackend:
    if clients.storage is None:
        raise AppError(ErrorType.unexpected_state, "Storage backend is not configured")
    return clients.storage


def workflow_runner(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    clients: Clients = Depends(clients_from_app),
    principal: Principal = Depends(get_principal),
) -> WorkflowRunner:
    return WorkflowRunner(
        session=session, settings=settings, clients=clients, actor=principal.actor
    )


def system_runner(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    clients: Clients = Depends(clients_from_app),
) -> WorkflowRunner:
    # Unauthenticated entry points (webhooks); callers are verified by the route itself.
    return WorkflowRunner(session=session, settings=settings, clients=clients, actor="webhook")


@dataclass(frozen=True, slots=True)
class Paging:
    offset: int
    limit: int


def paging(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=200),
) -> Paging:
    return Paging(offset=offset, limit=limit)


# --- Module Notes -----------------------------------------------------------
# Routers leave commits to the workflow runner; the Etsy OAuth routes are the exception
# because their state rows live outside any workflow.
