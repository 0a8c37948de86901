"""
Spare Finance API - Main Application Entry Point

FastAPI backend for personal and household finance.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from spare_finance.api.config import settings
from spare_finance.api.db.session import init_db, close_db
from spare_finance.api.exceptions import SpareError

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging("DEBUG" if settings.DEBUG else "INFO")
    await init_db()
    yield
    await close_db()


async def spare_error_handler(request: Request, exc: SpareError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Spare Finance - accounts, budgets, goals, billing and bank sync API",
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SpareError, spare_error_handler)

    # Include routers
    from spare_finance.api.auth.routes import router as auth_router
    from spare_finance.api.users.routes import router as users_router
    from spare_finance.api.households.routes import router as households_router
    from spare_finance.api.accounts.routes import router as accounts_router
    from spare_finance.api.categories.routes import router as categories_router
    from spare_finance.api.transactions.routes import router as transactions_router
    from spare_finance.api.budgets.routes import router as budgets_router
    from spare_finance.api.goals.routes import router as goals_router
    from spare_finance.api.debts.routes import router as debts_router
    from spare_finance.api.planned_payments.routes import router as planned_payments_router
    from spare_finance.api.planned_payments.routes import cron_router
    from spare_finance.api.user_subscriptions.routes import router as user_subscriptions_router
    from spare_finance.api.reports.routes import router as reports_router
    from spare_finance.api.billing.routes import router as billing_router
    from spare_finance.api.plaid.routes import router as plaid_router
    from spare_finance.api.questrade.routes import router as questrade_router
    from spare_finance.api.admin.routes import router as admin_router

    app.include_router(auth_router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(households_router, prefix="/api/v1/households", tags=["Households"])
    app.include_router(accounts_router, prefix="/api/v1/accounts", tags=["Accounts"])
    app.include_router(categories_router, prefix="/api/v1/categories", tags=["Categories"])
    app.include_router(transactions_router, prefix="/api/v1/transactions", tags=["Transactions"])
    app.include_router(budgets_router, prefix="/api/v1/budgets", tags=["Budgets"])
    app.include_router(goals_router, prefix="/api/v1/goals", tags=["Goals"])
    app.include_router(debts_router, prefix="/api/v1/debts", tags=["Debts"])
    app.include_router(
        planned_payments_router, prefix="/api/v1/planned-payments", tags=["Planned Payments"]
    )
    app.include_router(
        user_subscriptions_router, prefix="/api/v1/user-subscriptions", tags=["Subscriptions"]
    )
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])
    app.include_router(billing_router, prefix="/api/v1/billing", tags=["Billing"])
    app.include_router(plaid_router, prefix="/api/v1/plaid", tags=["Plaid"])
    app.include_router(questrade_router, prefix="/api/v1/questrade", tags=["Questrade"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])
    app.include_router(cron_router, prefix="/api/v1/cron", tags=["Cron"])

    # Health check endpoint
    @app.get("/api/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "service": settings.APP_NAME,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "spare_finance.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
