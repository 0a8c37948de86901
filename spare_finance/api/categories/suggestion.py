"""
Category Learning

Suggests a category for a new transaction from the user's own history:
transactions of the same type with the same normalized description (and
ideally the same amount) that the user has already categorized.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import Transaction

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")

# Thresholds (description+amount, description-only)
HIGH_THRESHOLDS = (3, 5)
MEDIUM_THRESHOLDS = (2, 3)

_WHITESPACE = re.compile(r"\s+")


def normalize_description(text: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.strip().lower())


@dataclass
class CategorySuggestion:
    """Suggested category with how strongly history supports it."""

    category_id: UUID
    subcategory_id: Optional[UUID]
    confidence: str  # high, medium, low
    match_count: int
    match_type: str  # description_and_amount, description_only


@dataclass
class _GroupCounts:
    exact: int = 0  # description and amount
    description: int = 0


def rank_candidates(
    history: Iterable[Tuple[Optional[str], Decimal, UUID, Optional[UUID]]],
    description: str,
    amount: Decimal,
) -> Optional[CategorySuggestion]:
    """
    Score categorized history rows against a description/amount.

    Args:
        history: Rows of (normalized_description, amount, category_id,
            subcategory_id), in the order they should be considered
        description: Normalized description of the new transaction
        amount: Amount of the new transaction

    Returns:
        Best suggestion, or None when nothing matches
    """
    groups: Dict[Tuple[UUID, Optional[UUID]], _GroupCounts] = {}
    amount = Decimal(str(amount))

    # groups are ordered by first appearance in history, matching or not
    for row_description, row_amount, category_id, subcategory_id in history:
        if not row_description:
            continue
        counts = groups.setdefault((category_id, subcategory_id), _GroupCounts())
        if row_description != description:
            continue
        if abs(Decimal(str(row_amount)) - amount) < AMOUNT_TOLERANCE:
            counts.exact += 1
        else:
            counts.description += 1

    best: Optional[Tuple[Tuple[UUID, Optional[UUID]], _GroupCounts]] = None
    best_score = 0

    for key, counts in groups.items():
        if counts.exact >= HIGH_THRESHOLDS[0] or counts.description >= HIGH_THRESHOLDS[1]:
            return _build(key, counts, "high", HIGH_THRESHOLDS[0])

        score = counts.exact * 2 + counts.description
        if score > best_score:
            best_score = score
            best = (key, counts)

    if best is None:
        return None

    key, counts = best
    if counts.exact >= MEDIUM_THRESHOLDS[0] or counts.description >= MEDIUM_THRESHOLDS[1]:
        return _build(key, counts, "medium", MEDIUM_THRESHOLDS[0])
    if counts.exact >= 1 or counts.description >= 1:
        return _build(key, counts, "low", 1)
    return None


def _build(
    key, counts: _GroupCounts, confidence: str, exact_threshold: int
) -> CategorySuggestion:
    # Report the amount-level match only when it alone earns this confidence
    category_id, subcategory_id = key
    if counts.exact >= exact_threshold:
        return CategorySuggestion(
            category_id=category_id,
            subcategory_id=subcategory_id,
            confidence=confidence,
            match_count=counts.exact,
            match_type="description_and_amount",
        )
    return CategorySuggestion(
        category_id=category_id,
        subcategory_id=subcategory_id,
        confidence=confidence,
        match_count=counts.description,
        match_type="description_only",
    )


async def suggest_category(
    db: AsyncSession,
    user_id: Optional[UUID],
    description: Optional[str],
    amount: Decimal,
    transaction_type: str,
    today: Optional[date] = None,
) -> Optional[CategorySuggestion]:
    """
    Suggest a category from the user's categorized history.

    Only the last CATEGORY_LEARNING_WINDOW_DAYS of non-deleted transactions
    of the same type are considered.
    """
    normalized = normalize_description(description)
    if not normalized or not user_id:
        return None

    since = (today or date.today()) - timedelta(days=settings.CATEGORY_LEARNING_WINDOW_DAYS)

    result = await db.execute(
        select(
            Transaction.description_search,
            Transaction.amount,
            Transaction.category_id,
            Transaction.subcategory_id,
        )
        .where(
            Transaction.user_id == user_id,
            Transaction.type == transaction_type,
            Transaction.category_id.is_not(None),
            Transaction.description_search.is_not(None),
            Transaction.deleted_at.is_(None),
            Transaction.date >= since,
        )
        .order_by(Transaction.date.desc())
    )

    suggestion = rank_candidates(result.all(), normalized, amount)
    if suggestion:
        logger.debug(
            "Category suggestion for user %s: %s (%s, %d matches)",
            user_id, suggestion.category_id, suggestion.confidence, suggestion.match_count,
        )
    return suggestion
