"""
jyt_admin.workflows.context

Explicit dependencies handed to every workflow step.

Responsibilities:
- Bundle the DB session, settings and outbound clients a step may need.
- Give steps access to the runner for nested workflows.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.settings import Settings

if TYPE_CHECKING:
    from jyt_admin.integrations.meta import MetaGraphClient
    from jyt_admin.storage.base import StorageBackend
    from jyt_admin.workflows.runner import WorkflowRunner


@dataclass(slots=True)
class Clients:
    """
    Long-lived outbound clients created at app startup (see `api.app.create_app`).
    """

    http: httpx.AsyncClient | None = None
    storage: StorageBackend | None = None
    graph: MetaGraphClient | None = None


@dataclass(slots=True)
class StepContext:
    session: AsyncSession
    settings: Settings
    runner: WorkflowRunner
    transaction_id: uuid.UUID
    actor: str | None = None
    clients: Clients = field(default_factory=Clients)
    log: structlog.stdlib.BoundLogger | None = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self.clients.http is None:
            raise RuntimeError("HTTP client is not configured")
        return self.clients.http

    @property
    def storage(self) -> StorageBackend:
        if self.clients.storage is None:
            raise RuntimeError("Storage backend is not configured")
        return self.clients.storage

    @property
    def graph(self) -> MetaGraphClient:
        if self.clients.graph is None:
            raise RuntimeError("Graph API client is not configured")
        return self.clients.graph
