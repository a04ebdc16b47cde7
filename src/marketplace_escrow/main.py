"""FastAPI application entry point for the Marketplace Escrow engine.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, engagement locks.
    2. Running: Serve the REST API at /api/v1/* on Uvicorn.
    3. Shutdown: Close database and Redis connections gracefully.

Run with:
    uvicorn marketplace_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from marketplace_escrow.config import get_settings
from marketplace_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        approvers=len(settings.payment_approver_id_list),
    )

    # 2. Initialize database
    from marketplace_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis; without it engagement locks are process-local
    from marketplace_escrow.infrastructure.locks import configure_engagement_locks
    from marketplace_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        redis = await init_redis()
    except (RedisError, OSError) as exc:
        logger.warning("app.redis_unavailable", error=str(exc))
        redis = None
    configure_engagement_locks(redis)

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Marketplace Escrow",
        description=(
            "Escrow payments and staged approvals for local-services engagements."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from marketplace_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from marketplace_escrow.api.routes.engagements import router as engagements_router
    from marketplace_escrow.api.routes.health import router as health_router
    from marketplace_escrow.api.routes.payments import router as payments_router
    from marketplace_escrow.api.routes.payout_accounts import router as payout_accounts_router

    app.include_router(health_router)
    app.include_router(engagements_router)
    app.include_router(payout_accounts_router)
    app.include_router(payments_router)

    return app


# The app instance used by Uvicorn
app = create_app()
