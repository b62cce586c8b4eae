"""
jyt_admin.api.app

FastAPI app factory for the JYT admin back-office.

Responsibilities:
- Build the FastAPI application and register routers, middleware and error handlers.
- Initialize and dispose shared infrastructure (DB engine, outbound clients, scheduler).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

import httpx
from fastapi import FastAPI

from jyt_admin import __version__
from jyt_admin.api.routers.dev_auth import router as dev_auth_router
from jyt_admin.api.routers.external_stores import router as external_stores_router
from jyt_admin.api.routers.health import router as health_router
from jyt_admin.api.routers.media import albums_router
from jyt_admin.api.routers.media import router as media_router
from jyt_admin.api.routers.partner_portal import router as partner_portal_router
from jyt_admin.api.routers.production_runs import router as production_runs_router
from jyt_admin.api.routers.records import (
    agreements_router,
    designs_router,
    email_templates_router,
    leads_router,
    partners_router,
    persons_router,
    segments_router,
    task_templates_router,
)
from jyt_admin.api.routers.socials import campaigns_router, posts_router, webhooks_router
from jyt_admin.api.routers.visual_flows import hooks_router
from jyt_admin.api.routers.visual_flows import router as visual_flows_router
from jyt_admin.api.routers.websites import router as websites_router
from jyt_admin.api.routers.workflow_executions import router as workflow_executions_router
from jyt_admin.db.init_db import init_db
from jyt_admin.db.session import create_engine, create_sessionmaker
from jyt_admin.errors import register_exception_handlers
from jyt_admin.flows.scheduler import FlowScheduler
from jyt_admin.integrations.meta import MetaGraphClient
from jyt_admin.observability.logging import configure_logging, get_logger
from jyt_admin.observability.middleware import RequestContextMiddleware
from jyt_admin.settings import Settings, get_settings
from jyt_admin.storage.s3 import S3Storage
from jyt_admin.workflows.context import Clients
from jyt_admin.workflows.socials import run_campaign_tick

log = get_logger(__name__)


def build_clients(settings: Settings) -> Clients:
    http = httpx.AsyncClient(timeout=settings.flow_http_timeout_seconds)
    return Clients(
        http=http,
        storage=S3Storage(settings=settings),
        graph=MetaGraphClient(http=http, settings=settings),
    )


def create_app(*, settings: Settings, clients: Clients | None = None) -> FastAPI:
    configure_logging(
        service_name=settings.service_name, level=settings.log_level, json=settings.log_json
    )

    app = FastAPI(
        title="JYT Admin",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )
    # Every `Depends(get_settings)` resolves to the settings this app was built with.
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(dev_auth_router)
    app.include_router(partners_router)
    app.include_router(persons_router)
    app.include_router(designs_router)
    app.include_router(task_templates_router)
    app.include_router(segments_router)
    app.include_router(leads_router)
    app.include_router(agreements_router)
    app.include_router(email_templates_router)
    app.include_router(production_runs_router)
    app.include_router(partner_portal_router)
    app.include_router(websites_router)
    app.include_router(albums_router)
    app.include_router(media_router)
    app.include_router(visual_flows_router)
    app.include_router(hooks_router)
    app.include_router(posts_router)
    app.include_router(campaigns_router)
    app.include_router(webhooks_router)
    app.include_router(external_stores_router)
    app.include_router(workflow_executions_router)

    @app.on_event("startup")
    async def _startup() -> None:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        app.state.owns_clients = clients is None
        app.state.clients = clients if clients is not None else build_clients(settings)
        if settings.env in ("dev", "test"):
            # Prod schemas come from Alembic migrations.
            await init_db(engine)

        app.state.scheduler = None
        if settings.flow_scheduler_enabled:
            scheduler = FlowScheduler(
                sessionmaker=app.state.sessionmaker,
                settings=settings,
                clients=app.state.clients,
                jobs=[run_campaign_tick],
            )
            await scheduler.start()
            app.state.scheduler = scheduler

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        app_clients = getattr(app.state, "clients", None)
        if getattr(app.state, "owns_clients", False) and app_clients.http is not None:
            await app_clients.http.aclose()
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()
        log.info("shutdown")

    return app


# --- Module Notes -----------------------------------------------------------
# Tests pass `clients=` with in-memory storage and a mocked Graph transport; the app then
# leaves closing them to the caller.
