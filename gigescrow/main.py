"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gigescrow.config import settings
from gigescrow.database import engine
from gigescrow.errors import ServiceError, service_error_handler
from gigescrow.middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from gigescrow.routers import admin, disputes, fees, internal, jobs, payments, users, wallet, webhooks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    logger.info("Starting gig escrow API (env=%s)", settings.env)
    yield
    await engine.dispose()


app = FastAPI(
    title="Gig Escrow",
    description="Escrow payments and dispute escalation for a gig marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]

# CORS - restrict to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware (order matters, outermost first)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_body_bytes)

# Routers
app.include_router(users.router)
app.include_router(jobs.router)
app.include_router(payments.router)
app.include_router(wallet.router)
app.include_router(disputes.router)
app.include_router(admin.router)
app.include_router(webhooks.router)
app.include_router(internal.router)
app.include_router(fees.router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
