# civicwatch/main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import sessionmaker

from civicwatch.api import health
from civicwatch.api.v1 import (
    area_codes,
    audit_logs,
    auth,
    incidents,
    messages,
    notifications,
    reports,
    stats,
    uploads,
    users,
)
from civicwatch.core.config import Settings, settings as default_settings
from civicwatch.core.errors import register_exception_handlers
from civicwatch.db.session import SessionLocal, make_engine, make_session_factory
from civicwatch.middleware.request_logging import RequestLoggingMiddleware
from civicwatch.models import Base
from civicwatch.services.container import build_services
from civicwatch.worker.scheduler import make_scheduler

log = logging.getLogger("civicwatch")

API_PREFIX = "/api/v1"

V1_ROUTERS = (
    auth.router,
    users.router,
    area_codes.router,
    incidents.router,
    messages.router,
    reports.router,
    notifications.router,
    audit_logs.router,
    stats.router,
    uploads.router,
)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    """
    Build the application. Tests pass their own settings and session factory;
    production uses the environment and the module-level SessionLocal.
    """
    settings = settings or default_settings
    _configure_logging(settings.log_level)

    if session_factory is None:
        if settings is default_settings:
            session_factory = SessionLocal
        else:
            session_factory = make_session_factory(make_engine(settings.database_url))

    app = FastAPI(title="CivicWatch", version="1.0.0")
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.services = build_services(settings)
    app.state.scheduler = None

    # ---------------------------
    # Middleware / errors
    # ---------------------------
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app, development=settings.is_development)

    # ---------------------------
    # Tables (dev convenience; Alembic owns production schema)
    # ---------------------------
    if settings.enable_create_all:
        Base.metadata.create_all(bind=session_factory.kw["bind"])

    # ---------------------------
    # Routers
    # ---------------------------
    for router in V1_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)
    app.include_router(health.router, prefix="/api")

    # local uploads are served by the app itself
    if settings.upload_base_url.startswith("/"):
        app.mount(settings.upload_base_url, StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    # ---------------------------
    # Scheduler (maintenance jobs)
    # ---------------------------
    @app.on_event("startup")
    def _start_scheduler():
        if not settings.enable_scheduler:
            return
        try:
            app.state.scheduler = make_scheduler(session_factory, app.state.services)
            app.state.scheduler.start()
            log.info("scheduler started")
        except Exception:
            log.exception("scheduler failed to start; API keeps running without it")
            app.state.scheduler = None

    @app.on_event("shutdown")
    def _stop_scheduler():
        sched = app.state.scheduler
        if sched:
            sched.shutdown(wait=False)

    app.openapi = lambda: _openapi(app)
    return app


def _openapi(app: FastAPI) -> dict:
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        description="Community incident reporting API",
        routes=app.routes,
    )
    schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schema["components"]["securitySchemes"]["OAuth2PasswordBearer"] = {
        "type": "oauth2",
        "flows": {"password": {"tokenUrl": f"{API_PREFIX}/auth/login", "scopes": {}}},
    }
    app.openapi_schema = schema
    return app.openapi_schema


app = create_app()
