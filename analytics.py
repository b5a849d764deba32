"""Pure aggregation over transaction records.

Every function here takes already-fetched records (``TransactionRecord`` or
anything with the same attributes) and never touches the database. Records
with unusable dates are skipped and logged; divisions by zero resolve to
``None``, ``0`` or ``""`` so a sparse ledger never raises.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from config import get_settings
from models import TransactionStatus, TransactionType
from periods import local_now, month_start, relative_start
from schemas import (
    AnalyticsData,
    CategorySpending,
    DashboardStats,
    MonthlyData,
    PaymentMethodUsage,
    TransactionStats,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)
TREND_MONTHS = 12
FALLBACK_CATEGORY = "Others"

CATEGORY_COLORS: dict[str, tuple[str, str]] = {
    "Investment": ("bg-purple-500", "#8b5cf6"),
    "Food & Dining": ("bg-blue-500", "#3b82f6"),
    "Food": ("bg-blue-400", "#60a5fa"),
    "Groceries": ("bg-green-500", "#22c55e"),
    "Rent": ("bg-orange-600", "#ea580c"),
    "Bills": ("bg-yellow-400", "#facc15"),
    "Utilities": ("bg-emerald-500", "#10b981"),
    "Transportation": ("bg-orange-500", "#f97316"),
    "Transfer": ("bg-cyan-500", "#06b6d4"),
    "Exchange": ("bg-fuchsia-500", "#d946ef"),
    "Entertainment": ("bg-pink-500", "#ec4899"),
    "Shopping": ("bg-indigo-500", "#6366f1"),
    "Healthcare": ("bg-red-500", "#ef4444"),
    "Education": ("bg-yellow-500", "#eab308"),
    "Other Expenses": ("bg-slate-400", "#94a3b8"),
    "Others": ("bg-slate-500", "#64748b"),
}

HEALTH_GRADES = (
    (95, "A+"),
    (85, "A"),
    (75, "B+"),
    (65, "B"),
    (55, "C+"),
    (45, "C"),
    (35, "D"),
)


def _type_of(record) -> str:
    value = getattr(record, "type", None)
    return value.value if isinstance(value, TransactionType) else str(value)


def _is(record, txn_type: TransactionType) -> bool:
    return _type_of(record) == txn_type.value


def _amount(record) -> float:
    try:
        return float(getattr(record, "amount", 0) or 0)
    except (TypeError, ValueError):
        logger.warning(f"record_skipped: id={getattr(record, 'id', None)} bad_amount")
        return 0.0


def coerce_datetime(value) -> Optional[datetime]:
    """Normalise a stored date to a naive datetime in the configured zone."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            tz = ZoneInfo(get_settings().timezone)
            value = value.astimezone(tz).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return None


def effective_date(record) -> Optional[datetime]:
    moment = coerce_datetime(getattr(record, "date", None))
    if moment is None:
        moment = coerce_datetime(getattr(record, "created_at", None))
    return moment


def _totals(records: Iterable) -> tuple[float, float]:
    income = 0.0
    expenses = 0.0
    for record in records:
        if _is(record, TransactionType.income):
            income += _amount(record)
        elif _is(record, TransactionType.expense):
            expenses += _amount(record)
    return income, expenses


def _ratio_change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100


def net_growth(current: Sequence, previous: Sequence) -> Optional[float]:
    """Period-over-period change of net income, clamped to +/-100%.

    ``None`` means the previous window had no positive net to compare
    against, which is not the same as zero growth.
    """
    cur_income, cur_expenses = _totals(current)
    last_income, last_expenses = _totals(previous)
    last_net = last_income - last_expenses
    if last_net <= 0:
        return None
    raw = _ratio_change(cur_income - cur_expenses, last_net)
    return max(-100.0, min(100.0, raw))


def monthly_trend(records: Iterable) -> list[MonthlyData]:
    buckets: dict[int, list[float]] = {}
    for record in records:
        moment = effective_date(record)
        if moment is None:
            logger.warning(
                f"monthly_trend_skip: id={getattr(record, 'id', None)} reason=no_date"
            )
            continue
        month_index = moment.year * 12 + (moment.month - 1)
        bucket = buckets.setdefault(month_index, [0.0, 0.0])
        if _is(record, TransactionType.income):
            bucket[0] += _amount(record)
        elif _is(record, TransactionType.expense):
            bucket[1] += _amount(record)

    if not buckets:
        return []

    result: list[MonthlyData] = []
    for month_index in range(min(buckets), max(buckets) + 1):
        income, expenses = buckets.get(month_index, (0.0, 0.0))
        year, month = divmod(month_index, 12)
        result.append(
            MonthlyData(
                month=f"{MONTH_NAMES[month]} {year}",
                income=income,
                expenses=expenses,
            )
        )
    return result[-TREND_MONTHS:]


def _by_category(records: Iterable) -> dict[str, float]:
    totals: dict[str, float] = {}
    for record in records:
        if not _is(record, TransactionType.expense):
            continue
        category = getattr(record, "category", None) or FALLBACK_CATEGORY
        totals[category] = totals.get(category, 0.0) + _amount(record)
    return totals


def category_color(category: str) -> tuple[str, str]:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[FALLBACK_CATEGORY])


def format_trend(current: float, previous: float) -> str:
    if previous <= 0:
        return ""
    change = _ratio_change(current, previous)
    return f"+{change:.1f}%" if change >= 0 else f"{change:.1f}%"


def category_spending(
    current: Iterable, previous: Iterable = ()
) -> list[CategorySpending]:
    current_totals = _by_category(current)
    previous_totals = _by_category(previous)
    total = sum(current_totals.values())

    items = []
    for category, amount in current_totals.items():
        color, hex_value = category_color(category)
        items.append(
            CategorySpending(
                category=category,
                amount=amount,
                percentage=amount / total * 100 if total > 0 else 0,
                color=color,
                hex=hex_value,
                trend=format_trend(amount, previous_totals.get(category, 0.0)),
            )
        )
    items.sort(key=lambda item: item.amount, reverse=True)
    return items


def health_grade(score: int) -> str:
    for threshold, grade in HEALTH_GRADES:
        if score >= threshold:
            return grade
    return "F"


def health_score(
    has_activity: bool, savings_rate: float, avg_income: float, avg_expenses: float
) -> int:
    if not has_activity:
        return 0
    if savings_rate >= 60:
        score = 100
    elif savings_rate >= 40:
        score = 80
    elif savings_rate >= 20:
        score = 60
    elif savings_rate >= 0:
        score = 40
    else:
        score = 20

    if avg_income > 0:
        spend_ratio = avg_expenses / avg_income
        if spend_ratio < 0.5:
            score += 10
        elif spend_ratio > 0.8:
            score -= 10
    elif avg_expenses > 0:
        # Spending with no income at all is treated as an unbounded ratio.
        score -= 10
    return int(max(0, min(100, score)))


def analytics_overview(
    range_records: Sequence,
    current: Sequence,
    previous: Sequence,
    cards_used: int = 0,
) -> AnalyticsData:
    months: set[int] = set()
    dated = []
    for record in range_records:
        moment = effective_date(record)
        if moment is not None:
            months.add(moment.year * 12 + moment.month)
            dated.append(record)
    month_count = len(months) or 1
    range_income, range_expenses = _totals(dated)
    avg_income = range_income / month_count
    avg_expenses = range_expenses / month_count
    savings_rate = (avg_income - avg_expenses) / avg_income * 100 if avg_income > 0 else 0

    cur_income, cur_expenses = _totals(current)
    last_income, last_expenses = _totals(previous)

    if last_income > 0:
        income_growth = _ratio_change(cur_income, last_income)
    else:
        income_growth = 100 if cur_income > 0 else 0

    last_rate = (last_income - last_expenses) / last_income * 100 if last_income > 0 else 0
    cur_rate = (cur_income - cur_expenses) / cur_income * 100 if cur_income > 0 else 0
    savings_growth = _ratio_change(cur_rate, last_rate) if last_rate > 0 else 0

    top_category = "N/A"
    top_amount = 0.0
    for category, amount in _by_category(current).items():
        if amount > top_amount:
            top_category, top_amount = category, amount

    score = health_score(len(current) > 0, savings_rate, avg_income, avg_expenses)
    return AnalyticsData(
        monthly_growth=net_growth(current, previous),
        avg_monthly_income=avg_income,
        avg_monthly_expenses=avg_expenses,
        savings_rate=savings_rate,
        top_spending_category=top_category,
        top_spending_amount=top_amount,
        transaction_count=len(range_records),
        cards_used=cards_used,
        income_growth=income_growth,
        savings_growth=savings_growth,
        health_score=score,
        health_grade=health_grade(score),
    )


def ledger_balance(records: Iterable) -> float:
    """Completed income minus completed expenses, over every record given."""
    completed = [
        record
        for record in records
        if getattr(record, "status", TransactionStatus.completed)
        in (TransactionStatus.completed, TransactionStatus.completed.value)
    ]
    income, expenses = _totals(completed)
    return income - expenses


def dashboard_stats(
    current: Sequence,
    previous: Sequence,
    cards: Sequence,
    ledger_records: Optional[Iterable] = None,
) -> DashboardStats:
    income, expenses = _totals(current)
    active = [card for card in cards if getattr(card, "is_active", True)]
    total_balance = sum(float(card.balance or 0) for card in active)
    # An unknown ledger is never reported as agreeing with the cards.
    ledger = ledger_balance(ledger_records) if ledger_records is not None else None
    return DashboardStats(
        total_balance=total_balance,
        total_income=income,
        total_expenses=expenses,
        monthly_growth=net_growth(current, previous),
        transaction_count=len(current),
        active_cards=len(active),
        ledger_balance=ledger,
        balance_reconciled=ledger is not None and abs(total_balance - ledger) < 0.01,
    )


def payment_method_usage(records: Sequence) -> list[PaymentMethodUsage]:
    counts = Counter(
        getattr(record, "payment_method", None) or "Other" for record in records
    )
    total = sum(counts.values())
    usage = [
        PaymentMethodUsage(
            method=method,
            count=count,
            percentage=count / total * 100 if total else 0,
        )
        for method, count in counts.items()
    ]
    usage.sort(key=lambda item: item.count, reverse=True)
    return usage


def _outflow(record) -> bool:
    return _is(record, TransactionType.expense) or _is(record, TransactionType.transfer)


def _flows(records: Iterable) -> tuple[float, float]:
    income = 0.0
    outflow = 0.0
    for record in records:
        if _is(record, TransactionType.income):
            income += _amount(record)
        elif _outflow(record):
            outflow += _amount(record)
    return income, outflow


def transaction_stats(
    records: Sequence, *, now: Optional[datetime] = None
) -> TransactionStats:
    """All-time totals plus month-over-month movement for the home page."""
    now = now or local_now()
    this_month = month_start(now)
    last_month_end = this_month - timedelta(microseconds=1)
    last_month = month_start(last_month_end)

    dated = [(coerce_datetime(getattr(r, "date", None)), r) for r in records]
    dated = [(moment, r) for moment, r in dated if moment is not None]

    total_income, total_expenses = _flows(records)
    balance = total_income - total_expenses

    cur_income, cur_expenses = _flows(r for moment, r in dated if moment >= this_month)
    last_income, last_expenses = _flows(
        r for moment, r in dated if last_month <= moment <= last_month_end
    )
    upto_income, upto_expenses = _flows(
        r for moment, r in dated if moment <= last_month_end
    )
    last_balance = upto_income - upto_expenses

    if last_balance != 0:
        balance_change = (balance - last_balance) / abs(last_balance) * 100
    else:
        balance_change = 100.0 if balance > 0 else 0.0
    income_change = _ratio_change(cur_income, last_income) if last_income > 0 else 0.0
    expense_change = (
        _ratio_change(cur_expenses, last_expenses) if last_expenses > 0 else 0.0
    )

    return TransactionStats(
        total_balance=balance,
        total_income=total_income,
        total_expenses=total_expenses,
        balance_change=round(balance_change, 1),
        income_change=round(income_change, 1),
        expense_change=round(expense_change, 1),
        savings_rate=round(balance / total_income * 100, 1) if total_income > 0 else 0.0,
        transaction_count=len(records),
    )


SORT_KEYS = ("date", "amount", "type")


@dataclass(frozen=True)
class TransactionQuery:
    type: str = "all"
    category: str = "all"
    status: str = "all"
    search: str = ""
    date_range: str = "30days"
    sort_by: str = "date"

    def with_changes(self, **changes) -> "TransactionQuery":
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown filter: {', '.join(sorted(unknown))}")
        if "sort_by" in changes and changes["sort_by"] not in SORT_KEYS:
            raise ValueError(f"Unsupported sort: {changes['sort_by']}")
        return replace(self, **changes)


def _value_of(value) -> str:
    return value.value if hasattr(value, "value") else str(value or "")


def _date_sort_key(record) -> datetime:
    return effective_date(record) or datetime.min


def filter_transactions(
    records: Iterable, query: TransactionQuery, *, now: Optional[datetime] = None
) -> list:
    filtered = list(records)

    start = relative_start(query.date_range, now=now)
    if start is not None:
        kept = []
        for record in filtered:
            moment = effective_date(record)
            if moment is not None and moment >= start:
                kept.append(record)
        filtered = kept
    if query.type != "all":
        filtered = [r for r in filtered if _type_of(r) == query.type]
    if query.category != "all":
        wanted = query.category.lower()
        filtered = [
            r for r in filtered if (getattr(r, "category", None) or "").lower() == wanted
        ]
    if query.status != "all":
        filtered = [
            r for r in filtered if _value_of(getattr(r, "status", None)) == query.status
        ]
    if query.search:
        needle = query.search.lower()
        filtered = [
            r
            for r in filtered
            if needle in (getattr(r, "description", None) or "").lower()
            or needle in (getattr(r, "category", None) or "").lower()
        ]

    if query.sort_by == "amount":
        filtered.sort(key=_amount, reverse=True)
    elif query.sort_by == "type":
        filtered.sort(key=_type_of)
    else:
        filtered.sort(key=_date_sort_key, reverse=True)
    return filtered


def recent_transactions(records: Iterable, limit: int = 10) -> list:
    return sorted(records, key=_date_sort_key, reverse=True)[:limit]
