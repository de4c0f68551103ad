"""HRMS Leave Engine — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hrms.accrual.router import router as accrual_router
from hrms.attendance.router import (
    attendance_router,
    holidays_router,
    restricted_holidays_router,
)
from hrms.common.exceptions import register_exception_handlers
from hrms.common.rate_limit import limiter
from hrms.compoff.router import router as compoff_router
from hrms.config import settings
from hrms.core_hr.router import departments_router, employees_router, roles_router
from hrms.database import engine
from hrms.leave.router import admin_router as admin_leaves_router
from hrms.leave.router import hr_actions_router
from hrms.leave.router import router as leave_router
from hrms.policy.router import router as policy_router
from hrms.wfh.router import admin_router as admin_wfh_router
from hrms.wfh.router import router as wfh_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("HRMS leave engine starting (%s)", settings.ENVIRONMENT)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    _configure_logging()

    app = FastAPI(
        title="HRMS Leave Engine",
        description="Leave policy, ledger, accrual and approval workflows for the HR admin console",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

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

    # Register routers
    app.include_router(accrual_router, prefix="/api/v1/accrual", tags=["accrual"])
    app.include_router(policy_router, prefix="/api/v1/policy", tags=["policy"])
    app.include_router(leave_router, prefix="/api/v1/leaves", tags=["leave"])
    app.include_router(hr_actions_router, prefix="/api/v1/hr/actions", tags=["hr-actions"])
    app.include_router(admin_leaves_router, prefix="/api/v1/admin/leaves", tags=["admin-leaves"])
    app.include_router(compoff_router, prefix="/api/v1/compoff", tags=["compoff"])
    app.include_router(wfh_router, prefix="/api/v1/wfh", tags=["wfh"])
    app.include_router(admin_wfh_router, prefix="/api/v1/admin/wfh", tags=["admin-wfh"])
    app.include_router(roles_router, prefix="/api/v1/roles", tags=["roles"])
    app.include_router(employees_router, prefix="/api/v1/employees", tags=["employees"])
    app.include_router(departments_router, prefix="/api/v1/departments", tags=["departments"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])
    app.include_router(
        restricted_holidays_router, prefix="/api/v1/restricted-holidays", tags=["restricted-holidays"],
    )
    app.include_router(attendance_router, prefix="/api/v1/attendance", tags=["attendance"])

    return app


app = create_app()
