"""HR Leave Engine — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hr_leave.common.exceptions import register_exception_handlers
from hr_leave.common.rate_limit import limiter
from hr_leave.config import settings
from hr_leave.database import async_session_factory, create_tables, engine
from hr_leave.leave.router import router as leave_router
from hr_leave.leave.service import LeaveWorkflowService
from hr_leave.leave.store import SqlAlchemyLeaveStore
from hr_leave.notifications.service import DatabaseNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    notifier: Optional[DatabaseNotifier] = None
    if getattr(app.state, "leave_service", None) is None:
        if settings.ENVIRONMENT != "production":
            await create_tables()
        notifier = DatabaseNotifier(
            async_session_factory, enabled=settings.NOTIFICATIONS_ENABLED,
        )
        service = LeaveWorkflowService(SqlAlchemyLeaveStore(async_session_factory), notifier)
        await service.hydrate()
        app.state.leave_service = service
    yield
    # Shutdown
    if notifier is not None:
        await notifier.drain()
    await engine.dispose()


def create_app(service: Optional[LeaveWorkflowService] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    A pre-built ``service`` skips the database bootstrap in the lifespan.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="HR Leave Engine",
        description="Leave balances, overlap checks and two-stage approvals",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )
    app.state.leave_service = service

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])

    return app


app = create_app()
