"""
Report Schemas
"""

import datetime as dt
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CategorySpend(BaseModel):
    category_id: Optional[UUID]
    category_name: str
    amount: Decimal
    transaction_count: int
    percentage: float


class MonthlySummaryResponse(BaseModel):
    month: dt.date
    income: Decimal
    expenses: Decimal
    net: Decimal
    savings_rate: float
    by_category: List[CategorySpend]


class CashflowPoint(BaseModel):
    month: dt.date
    income: Decimal
    expenses: Decimal
    net: Decimal


class CashflowTrendResponse(BaseModel):
    months: int
    points: List[CashflowPoint]


class DetectedSubscriptionResponse(BaseModel):
    """billing_day is a day of month, or a weekday with Sunday=0 for weekly cycles."""

    model_config = ConfigDict(from_attributes=True)

    merchant_name: str
    merchant_entity_id: Optional[str] = None
    logo_url: Optional[str] = None
    amount: float
    frequency: Literal["daily", "weekly", "biweekly", "semimonthly", "monthly"]
    billing_day: Optional[int]
    first_billing_date: dt.date
    last_transaction_date: dt.date
    account_id: UUID
    account_name: str
    transaction_count: int
    confidence: Literal["high", "medium", "low"]
    description: str
    transaction_ids: List[UUID]


class DetectedSubscriptionListResponse(BaseModel):
    items: List[DetectedSubscriptionResponse]


class HealthAlert(BaseModel):
    id: str
    title: str
    description: str
    severity: Literal["critical", "warning", "info"]
    action: str


class HealthSuggestion(BaseModel):
    id: str
    title: str
    description: str
    impact: Literal["high", "medium", "low"]


class FinancialHealthResponse(BaseModel):
    """Score 0-100 from the share of income spent; classification follows the same bands."""

    score: int
    classification: Literal["Excellent", "Good", "Fair", "Poor", "Critical"]
    monthly_income: float
    monthly_expenses: float
    net_amount: float
    savings_rate: float
    message: str
    spending_discipline: Literal["Excellent", "Good", "Fair", "Poor", "Critical", "Unknown"]
    debt_exposure: Literal["Low", "Moderate", "High"]
    emergency_fund_months: float
    last_month_score: Optional[int] = None
    alerts: List[HealthAlert]
    suggestions: List[HealthSuggestion]
