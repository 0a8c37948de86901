"""
Report Routes
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import User
from spare_finance.api.dependencies import get_current_user
from spare_finance.api.reports.service import ReportService
from spare_finance.api.reports.schemas import (
    CashflowTrendResponse,
    DetectedSubscriptionListResponse,
    DetectedSubscriptionResponse,
    FinancialHealthResponse,
    MonthlySummaryResponse,
)


router = APIRouter()


def get_report_service(db: AsyncSession = Depends(get_db)) -> ReportService:
    return ReportService(db)


@router.get("/monthly-summary", response_model=MonthlySummaryResponse, summary="Monthly summary")
async def monthly_summary(
    month: Optional[date] = Query(None, description="Any day of the month; defaults to today"),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
) -> MonthlySummaryResponse:
    return MonthlySummaryResponse(**await service.monthly_summary(user.id, month or date.today()))


@router.get("/cashflow", response_model=CashflowTrendResponse, summary="Cashflow trend")
async def cashflow_trend(
    months: int = Query(6, ge=1, le=24),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
) -> CashflowTrendResponse:
    points = await service.cashflow_trend(user.id, months)
    return CashflowTrendResponse(months=months, points=points)


@router.get(
    "/subscriptions",
    response_model=DetectedSubscriptionListResponse,
    summary="Detect recurring charges",
)
async def detect_subscriptions(
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
) -> DetectedSubscriptionListResponse:
    detected = await service.detect_subscriptions(user.id)
    return DetectedSubscriptionListResponse(
        items=[DetectedSubscriptionResponse.model_validate(d) for d in detected]
    )


@router.get(
    "/financial-health",
    response_model=FinancialHealthResponse,
    summary="Financial health score",
)
async def financial_health(
    month: Optional[date] = Query(None, description="Any day of the month; defaults to today"),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
) -> FinancialHealthResponse:
    """Scores the month by how much of its income was spent."""
    return FinancialHealthResponse(**await service.financial_health(user.id, month or date.today()))
