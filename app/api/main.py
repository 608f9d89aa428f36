"""FastAPI application factory.

Assembles the PII filter middleware and the API routers, and owns the
registry gateway lifecycle: it is built at startup, shared by every
request through ``app.state``, and closed at shutdown.
This module is the authoritative app object — app/main.py re-exports it.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.middleware.pii_filter import PIIFilterMiddleware
from app.api.routes.health import router as health_router
from app.api.routes.lookup import router as lookup_router
from app.core.logging import setup_logging
from app.core.settings import get_settings
from app.registry.gateway import build_gateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    gateway = build_gateway(get_settings())
    app.state.registry_gateway = gateway
    logger.info("Registry gateway started: %s", type(gateway).__name__)
    try:
        yield
    finally:
        await gateway.aclose()
        app.state.registry_gateway = None


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# Identity numbers must never be echoed back to the caller
app.add_middleware(PIIFilterMiddleware)

app.include_router(health_router)
app.include_router(lookup_router)
