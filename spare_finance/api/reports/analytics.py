"""
Spare Finance - Report Analytics

Pure computations behind the reports endpoints:

- cashflow_frame: per-month income/expense/net aggregation (pandas)
- detect_subscriptions: recurring-charge detection over expense history (numpy)

Inputs are plain rows so the functions can be exercised without a database.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


# ==================== Cashflow ====================


def cashflow_frame(
    rows: Iterable[Tuple[date, str, float]], start: date, months: int
) -> pd.DataFrame:
    """
    Aggregate (date, type, amount) rows into one row per month.

    Months without activity are present with zeros so the series is
    continuous from start for the requested number of months.
    """
    periods = pd.period_range(start=pd.Timestamp(start), periods=months, freq="M")
    df = pd.DataFrame(list(rows), columns=["date", "type", "amount"])

    if df.empty:
        monthly = pd.DataFrame(0.0, index=periods, columns=["income", "expense"])
    else:
        df["month"] = pd.to_datetime(df["date"]).dt.to_period("M")
        df["amount"] = df["amount"].astype(float)
        monthly = (
            df.pivot_table(
                index="month", columns="type", values="amount", aggfunc="sum", fill_value=0.0
            )
            .reindex(index=periods, fill_value=0.0)
            .reindex(columns=["income", "expense"], fill_value=0.0)
        )

    monthly["net"] = monthly["income"] - monthly["expense"]
    monthly.index.name = "month"
    return monthly.round(2)


# ==================== Subscription detection ====================

KNOWN_SUBSCRIPTION_SERVICES: Dict[str, str] = {
    # streaming
    "netflix": "Netflix",
    "spotify": "Spotify",
    "disney": "Disney+",
    "disneyplus": "Disney+",
    "hulu": "Hulu",
    "hbo": "HBO Max",
    "max": "Max",
    "amazon prime": "Amazon Prime",
    "prime video": "Prime Video",
    "apple tv": "Apple TV+",
    "appletv": "Apple TV+",
    "paramount": "Paramount+",
    "paramountplus": "Paramount+",
    "peacock": "Peacock",
    "youtube premium": "YouTube Premium",
    "youtube tv": "YouTube TV",
    # music
    "apple music": "Apple Music",
    "applemusic": "Apple Music",
    "tidal": "Tidal",
    "pandora": "Pandora",
    "deezer": "Deezer",
    # software
    "adobe": "Adobe Creative Cloud",
    "microsoft 365": "Microsoft 365",
    "office 365": "Microsoft 365",
    "google workspace": "Google Workspace",
    "g suite": "Google Workspace",
    "dropbox": "Dropbox",
    "icloud": "iCloud",
    "onedrive": "OneDrive",
    "notion": "Notion",
    "figma": "Figma",
    "slack": "Slack",
    "zoom": "Zoom",
    # gaming
    "xbox": "Xbox Game Pass",
    "playstation": "PlayStation Plus",
    "nintendo": "Nintendo Switch Online",
    "steam": "Steam",
    # fitness
    "peloton": "Peloton",
    "nike": "Nike Training Club",
    "strava": "Strava",
    "myfitnesspal": "MyFitnessPal",
    # news
    "new york times": "The New York Times",
    "nytimes": "The New York Times",
    "washington post": "The Washington Post",
    "wall street journal": "The Wall Street Journal",
    "wsj": "The Wall Street Journal",
    # other
    "amazon": "Amazon",
    "costco": "Costco",
    "audible": "Audible",
    "kindle unlimited": "Kindle Unlimited",
}

CONFIDENCE_ORDER = {"high": 3, "medium": 2, "low": 1}

MAX_AMOUNT_VARIANCE = 0.30
MIN_DATE_REGULARITY = 0.4

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass
class ExpenseRow:
    """One expense considered for detection."""

    transaction_id: UUID
    account_id: UUID
    account_name: str
    date: date
    amount: float
    merchant: str
    merchant_entity_id: Optional[str] = None
    logo_url: Optional[str] = None


@dataclass
class DetectedSubscription:
    merchant_name: str
    amount: float
    frequency: str
    billing_day: Optional[int]
    first_billing_date: date
    last_transaction_date: date
    account_id: UUID
    account_name: str
    transaction_count: int
    confidence: str
    transaction_ids: List[UUID] = field(default_factory=list)
    merchant_entity_id: Optional[str] = None
    logo_url: Optional[str] = None

    @property
    def description(self) -> str:
        return f"Detected from {self.transaction_count} transaction(s)"


def normalize_merchant(name: Optional[str]) -> str:
    if not name:
        return ""
    return _NON_ALNUM.sub("", name.lower().strip())


def find_known_service(merchant: str) -> Optional[str]:
    """Display name of a known subscription service, allowing partial matches."""
    normalized = normalize_merchant(merchant)
    if not normalized:
        return None
    if normalized in KNOWN_SUBSCRIPTION_SERVICES:
        return KNOWN_SUBSCRIPTION_SERVICES[normalized]
    for key, name in KNOWN_SUBSCRIPTION_SERVICES.items():
        if key in normalized or normalized in key:
            return name
    return None


def _intervals(dates: Sequence[date]) -> np.ndarray:
    ordinals = np.sort(np.array([d.toordinal() for d in dates], dtype=float))
    return np.diff(ordinals)


def amount_variance(amounts: Sequence[float]) -> float:
    """Population coefficient of variation of the amounts."""
    if len(amounts) < 2:
        return 0.0
    values = np.asarray(amounts, dtype=float)
    mean = values.mean()
    return float(values.std() / mean) if mean > 0 else 0.0


def date_regularity(dates: Sequence[date]) -> float:
    """1 - coefficient of variation of the day gaps, floored at 0."""
    if len(dates) < 2:
        return 1.0
    gaps = _intervals(dates)
    mean = gaps.mean()
    if mean <= 0:
        return 0.0
    return float(max(0.0, 1 - gaps.std() / mean))


def classify_frequency(dates: Sequence[date]) -> str:
    if len(dates) < 2:
        return "monthly"
    avg_days = _intervals(dates).mean()
    if avg_days <= 1.5:
        return "daily"
    if avg_days <= 4:
        return "weekly"
    if avg_days <= 10:
        return "biweekly"
    if avg_days <= 18:
        return "semimonthly"
    return "monthly"


def billing_day(frequency: str, dates: Sequence[date]) -> Optional[int]:
    """
    Day of month for monthly/semimonthly, weekday (Sunday=0) for
    weekly/biweekly, None for daily.
    """
    if not dates:
        return None
    first = min(dates)
    if frequency in ("monthly", "semimonthly"):
        return first.day
    if frequency in ("weekly", "biweekly"):
        return first.isoweekday() % 7
    return None


def confidence_level(count: int, variance: float, regularity: float, known: bool) -> str:
    score = 0
    if count >= 6:
        score += 3
    elif count >= 4:
        score += 2
    elif count >= 2:
        score += 1

    if variance < 0.05:
        score += 3
    elif variance < 0.10:
        score += 2
    elif variance < 0.20:
        score += 1

    if regularity > 0.8:
        score += 2
    elif regularity > 0.6:
        score += 1

    if known:
        score += 2

    if score >= 7:
        return "high"
    if score >= 4:
        return "medium"
    return "low"


def _analyse_group(group: List[ExpenseRow]) -> Optional[DetectedSubscription]:
    rows = [r for r in group if r.amount > 0]
    if len(rows) < 2:
        return None

    amounts = [r.amount for r in rows]
    dates = [r.date for r in group]
    variance = amount_variance(amounts)
    regularity = date_regularity(dates)
    merchant = group[0].merchant.strip()
    known = find_known_service(merchant)

    if not (variance < MAX_AMOUNT_VARIANCE and regularity > MIN_DATE_REGULARITY) and not known:
        return None

    # every known service bills monthly
    frequency = "monthly" if known else classify_frequency(dates)
    ordered = sorted(group, key=lambda r: r.date)
    return DetectedSubscription(
        merchant_name=known or merchant,
        amount=round(float(np.mean(amounts)), 2),
        frequency=frequency,
        billing_day=billing_day(frequency, dates),
        first_billing_date=ordered[0].date,
        last_transaction_date=ordered[-1].date,
        account_id=group[0].account_id,
        account_name=group[0].account_name,
        transaction_count=len(group),
        confidence=confidence_level(len(group), variance, regularity, known is not None),
        transaction_ids=[r.transaction_id for r in ordered],
        merchant_entity_id=group[0].merchant_entity_id,
        logo_url=group[0].logo_url,
    )


def detect_subscriptions(rows: Iterable[ExpenseRow]) -> List[DetectedSubscription]:
    """Group expenses by (merchant, account) and keep recurring-looking groups."""
    groups: Dict[Tuple[str, UUID], List[ExpenseRow]] = {}
    for row in rows:
        key = normalize_merchant(row.merchant)
        if not key:
            continue
        groups.setdefault((key, row.account_id), []).append(row)

    detected = [
        found
        for found in (_analyse_group(group) for group in groups.values() if len(group) >= 2)
        if found is not None
    ]
    detected.sort(
        key=lambda s: (CONFIDENCE_ORDER[s.confidence], s.transaction_count), reverse=True
    )
    logger.info("Detected %d potential subscriptions", len(detected))
    return detected
