from datetime import datetime, timezone
from itertools import count

import pytest

import analytics
from analytics import TransactionQuery
from models import TransactionStatus, TransactionType
from store import CardRecord, TransactionRecord

_ids = count(1)


def rec(
    type: TransactionType,
    amount: float,
    date,
    category=None,
    *,
    created_at=None,
    status=TransactionStatus.completed,
    description="",
    payment_method=None,
) -> TransactionRecord:
    return TransactionRecord(
        id=next(_ids),
        type=type,
        amount=amount,
        category=category,
        date=date,
        created_at=created_at,
        status=status,
        description=description,
        payment_method=payment_method,
    )


def income(amount, date, category="Salary", **kwargs):
    return rec(TransactionType.income, amount, date, category, **kwargs)


def expense(amount, date, category=None, **kwargs):
    return rec(TransactionType.expense, amount, date, category, **kwargs)


def test_monthly_trend_fills_gaps_and_excludes_transfers() -> None:
    records = [
        income(1000, datetime(2024, 1, 10)),
        expense(200, datetime(2024, 1, 12), "Food"),
        rec(TransactionType.transfer, 999, datetime(2024, 2, 1)),
        expense(50, datetime(2024, 3, 5), "Rent"),
    ]

    trend = analytics.monthly_trend(records)

    assert [m.month for m in trend] == ["Jan 2024", "Feb 2024", "Mar 2024"]
    assert (trend[0].income, trend[0].expenses) == (1000, 200)
    assert (trend[1].income, trend[1].expenses) == (0, 0)
    assert (trend[2].income, trend[2].expenses) == (0, 50)


def test_monthly_trend_keeps_last_twelve_months_across_year_boundary() -> None:
    records = [
        income(10, datetime(2022, 11, 1)),
        income(20, datetime(2024, 2, 1)),
    ]

    trend = analytics.monthly_trend(records)

    assert len(trend) == 12
    assert trend[0].month == "Mar 2023"
    assert trend[-1].month == "Feb 2024"
    assert trend[-1].income == 20


def test_monthly_trend_uses_created_at_and_skips_undated() -> None:
    records = [
        income(100, None, created_at=datetime(2024, 5, 3)),
        expense(40, None),
        expense(10, "not-a-date", created_at=None),
    ]

    trend = analytics.monthly_trend(records)

    assert len(trend) == 1
    assert trend[0].month == "May 2024"
    assert trend[0].income == 100
    assert trend[0].expenses == 0


def test_monthly_trend_empty_and_single_record() -> None:
    assert analytics.monthly_trend([]) == []
    single = analytics.monthly_trend([expense(5, datetime(2024, 7, 1))])
    assert [m.month for m in single] == ["Jul 2024"]


def test_monthly_trend_accepts_iso_strings_and_aware_datetimes() -> None:
    # 23:30 UTC on Jan 31 is Feb 1 in Lagos (UTC+1).
    aware = datetime(2024, 1, 31, 23, 30, tzinfo=timezone.utc)
    records = [income(10, "2024-01-15T10:00:00Z"), expense(5, aware)]

    trend = analytics.monthly_trend(records)

    assert [m.month for m in trend] == ["Jan 2024", "Feb 2024"]
    assert trend[1].expenses == 5


def test_category_spending_percentages_trend_and_colors() -> None:
    current = [
        expense(150, datetime(2024, 6, 2), "Food"),
        expense(50, datetime(2024, 6, 3), "Rent"),
        expense(100, datetime(2024, 6, 4), None),
        expense(200, datetime(2024, 6, 5), "Crypto"),
    ]
    previous = [
        expense(100, datetime(2024, 5, 2), "Food"),
        expense(100, datetime(2024, 5, 3), "Rent"),
    ]

    items = analytics.category_spending(current, previous)

    assert [i.category for i in items] == ["Crypto", "Food", "Others", "Rent"]
    by_name = {i.category: i for i in items}
    assert by_name["Food"].trend == "+50.0%"
    assert by_name["Rent"].trend == "-50.0%"
    assert by_name["Others"].trend == ""
    assert by_name["Food"].color == "bg-blue-400"
    assert by_name["Food"].hex == "#60a5fa"
    assert by_name["Crypto"].color == "bg-slate-500"
    assert sum(i.percentage for i in items) == pytest.approx(100)
    assert by_name["Crypto"].percentage == pytest.approx(40)


def test_category_spending_flat_trend_is_positive_zero() -> None:
    items = analytics.category_spending(
        [expense(80, datetime(2024, 6, 1), "Bills")],
        [expense(80, datetime(2024, 5, 1), "Bills")],
    )
    assert items[0].trend == "+0.0%"


def test_category_spending_ignores_non_expenses_and_handles_empty() -> None:
    assert analytics.category_spending([], []) == []
    items = analytics.category_spending([income(500, datetime(2024, 6, 1))])
    assert items == []


def test_overview_healthy_saver() -> None:
    current = [
        income(1000, datetime(2024, 6, 1)),
        expense(300, datetime(2024, 6, 2), "Food"),
    ]

    data = analytics.analytics_overview(current, current, [], cards_used=2)

    assert data.monthly_growth is None
    assert data.avg_monthly_income == 1000
    assert data.avg_monthly_expenses == 300
    assert data.savings_rate == pytest.approx(70)
    assert data.income_growth == 100
    assert data.savings_growth == 0
    assert data.top_spending_category == "Food"
    assert data.top_spending_amount == 300
    assert data.transaction_count == 2
    assert data.cards_used == 2
    assert data.health_score == 100
    assert data.health_grade == "A+"


@pytest.mark.parametrize(
    "income_amount,expense_amount,score,grade",
    [
        (1000, 900, 30, "F"),
        (1000, 700, 60, "C+"),
        (1000, 550, 80, "B+"),
        (0, 500, 30, "F"),
    ],
)
def test_overview_health_score_tiers(income_amount, expense_amount, score, grade) -> None:
    current = [expense(expense_amount, datetime(2024, 6, 2), "Rent")]
    if income_amount:
        current.append(income(income_amount, datetime(2024, 6, 1)))

    data = analytics.analytics_overview(current, current, [])

    assert data.health_score == score
    assert isinstance(data.health_score, int)
    assert data.health_grade == grade


def test_overview_with_no_current_activity_scores_zero() -> None:
    range_records = [income(1000, datetime(2024, 4, 1))]

    data = analytics.analytics_overview(range_records, [], [])

    assert data.health_score == 0
    assert data.health_grade == "F"
    assert data.top_spending_category == "N/A"
    assert data.top_spending_amount == 0
    assert data.transaction_count == 1


def test_overview_averages_over_distinct_months() -> None:
    range_records = [
        income(1000, datetime(2024, 4, 1)),
        income(3000, datetime(2024, 6, 1)),
        expense(400, datetime(2024, 6, 3)),
    ]

    data = analytics.analytics_overview(range_records, range_records[1:], [])

    assert data.avg_monthly_income == 2000
    assert data.avg_monthly_expenses == 200
    assert data.savings_rate == pytest.approx(90)


@pytest.mark.parametrize(
    "current_income,expected",
    [(350, 50.0), (1200, 100.0), (0, -100.0)],
)
def test_net_growth_is_clamped(current_income, expected) -> None:
    previous = [income(200, datetime(2024, 5, 1)), expense(100, datetime(2024, 5, 2))]
    current = [income(current_income, datetime(2024, 6, 1)), expense(200, datetime(2024, 6, 2))]

    assert analytics.net_growth(current, previous) == pytest.approx(expected)


def test_net_growth_is_none_without_positive_previous_net() -> None:
    previous = [income(100, datetime(2024, 5, 1)), expense(100, datetime(2024, 5, 2))]
    current = [income(500, datetime(2024, 6, 1))]

    assert analytics.net_growth(current, previous) is None
    assert analytics.net_growth(current, []) is None


def test_savings_growth_compares_period_rates() -> None:
    previous = [income(1000, datetime(2024, 5, 1)), expense(500, datetime(2024, 5, 2))]
    current = [income(1000, datetime(2024, 6, 1)), expense(250, datetime(2024, 6, 2))]

    data = analytics.analytics_overview(current, current, previous)

    # 50% -> 75% savings rate
    assert data.savings_growth == pytest.approx(50)
    assert data.income_growth == pytest.approx(0)
    assert data.monthly_growth == pytest.approx(50)


def test_dashboard_stats_totals_and_reconciliation() -> None:
    current = [
        income(1000, datetime(2024, 6, 1)),
        expense(400, datetime(2024, 6, 2)),
        rec(TransactionType.transfer, 50, datetime(2024, 6, 3)),
    ]
    cards = [
        CardRecord(id=1, balance=500, is_active=True, last4="1234", bank_name="A"),
        CardRecord(id=2, balance=100, is_active=True, last4="5678", bank_name="B"),
    ]
    ledger = current + [
        expense(999, datetime(2024, 6, 4), status=TransactionStatus.failed)
    ]

    stats = analytics.dashboard_stats(current, [], cards, ledger)

    assert stats.total_income == 1000
    assert stats.total_expenses == 400
    assert stats.transaction_count == 3
    assert stats.active_cards == 2
    assert stats.total_balance == 600
    assert stats.ledger_balance == 600
    assert stats.balance_reconciled is True
    assert stats.monthly_growth is None


def test_dashboard_stats_flags_divergent_balances() -> None:
    cards = [CardRecord(id=1, balance=10, is_active=True, last4="1234", bank_name="A")]

    stats = analytics.dashboard_stats([], [], cards, [income(25, datetime(2024, 1, 1))])

    assert stats.ledger_balance == 25
    assert stats.balance_reconciled is False


def test_payment_method_usage_counts_and_sorts() -> None:
    records = [
        expense(1, datetime(2024, 6, 1), payment_method="wallet"),
        expense(1, datetime(2024, 6, 2), payment_method="wallet"),
        expense(1, datetime(2024, 6, 3), payment_method="card"),
        expense(1, datetime(2024, 6, 4)),
    ]

    usage = analytics.payment_method_usage(records)

    assert usage[0].method == "wallet"
    assert usage[0].count == 2
    assert usage[0].percentage == pytest.approx(50)
    assert {u.method for u in usage} == {"wallet", "card", "Other"}
    assert analytics.payment_method_usage([]) == []


def test_transaction_stats_month_over_month() -> None:
    records = [
        income(1000, datetime(2024, 5, 10)),
        expense(200, datetime(2024, 5, 20)),
        income(500, datetime(2024, 6, 5)),
        rec(TransactionType.transfer, 100, datetime(2024, 6, 6)),
    ]

    stats = analytics.transaction_stats(records, now=datetime(2024, 6, 15, 12, 0))

    assert stats.total_income == 1500
    assert stats.total_expenses == 300
    assert stats.total_balance == 1200
    assert stats.balance_change == 50.0
    assert stats.income_change == -50.0
    assert stats.expense_change == -50.0
    assert stats.savings_rate == 80.0
    assert stats.transaction_count == 4


def test_transaction_stats_zero_baselines() -> None:
    records = [income(300, datetime(2024, 6, 5))]

    stats = analytics.transaction_stats(records, now=datetime(2024, 6, 15))

    assert stats.balance_change == 100.0
    assert stats.income_change == 0.0
    assert stats.expense_change == 0.0

    empty = analytics.transaction_stats([], now=datetime(2024, 6, 15))
    assert empty.balance_change == 0.0
    assert empty.savings_rate == 0.0


def _ledger():
    return [
        expense(20, datetime(2024, 6, 28), "Food", description="Lunch at Mama Put"),
        income(500, datetime(2024, 6, 25), "Salary", description="June pay"),
        expense(80, datetime(2024, 6, 10), "food", description="Groceries run"),
        rec(
            TransactionType.transfer,
            60,
            datetime(2024, 3, 1),
            "Transfer",
            status=TransactionStatus.pending,
        ),
    ]


def test_filter_transactions_by_range_type_and_category() -> None:
    now = datetime(2024, 6, 30, 12, 0)
    records = _ledger()

    last_week = analytics.filter_transactions(
        records, TransactionQuery(date_range="7days"), now=now
    )
    assert [r.amount for r in last_week] == [20, 500]

    food = analytics.filter_transactions(
        records, TransactionQuery(category="FOOD", type="expense"), now=now
    )
    assert [r.amount for r in food] == [20, 80]

    everything = analytics.filter_transactions(
        records, TransactionQuery(date_range="all", status="pending"), now=now
    )
    assert [r.amount for r in everything] == [60]


def test_filter_transactions_search_and_sorting() -> None:
    now = datetime(2024, 6, 30)
    records = _ledger()

    found = analytics.filter_transactions(
        records, TransactionQuery(search="GROC", date_range="all"), now=now
    )
    assert [r.amount for r in found] == [80]

    by_amount = analytics.filter_transactions(
        records, TransactionQuery(sort_by="amount", date_range="all"), now=now
    )
    assert [r.amount for r in by_amount] == [500, 80, 60, 20]

    by_type = analytics.filter_transactions(
        records, TransactionQuery(sort_by="type", date_range="all"), now=now
    )
    assert [analytics._type_of(r) for r in by_type] == [
        "expense",
        "expense",
        "income",
        "transfer",
    ]


def test_query_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError):
        TransactionQuery().with_changes(colour="red")
    with pytest.raises(ValueError):
        TransactionQuery().with_changes(sort_by="category")


def test_recent_transactions_are_newest_first() -> None:
    records = [expense(i, datetime(2024, 1, i + 1)) for i in range(15)]

    recent = analytics.recent_transactions(records)

    assert len(recent) == 10
    assert recent[0].amount == 14
    assert recent[-1].amount == 5


def test_dashboard_stats_with_unknown_ledger_is_not_reconciled() -> None:
    cards = [CardRecord(id=1, balance=500, is_active=True, last4="1234", bank_name="A")]

    stats = analytics.dashboard_stats([], [], cards, None)

    assert stats.total_balance == 500
    assert stats.ledger_balance is None
    assert stats.balance_reconciled is False


def test_overview_averages_ignore_undated_records() -> None:
    range_records = [
        income(1000, datetime(2024, 6, 1)),
        expense(200, datetime(2024, 6, 2)),
        income(5000, None),
        expense(700, "garbage"),
    ]

    data = analytics.analytics_overview(range_records, range_records[:2], [])

    assert data.avg_monthly_income == 1000
    assert data.avg_monthly_expenses == 200
    assert data.savings_rate == pytest.approx(80)
    assert data.transaction_count == 4


def test_aggregations_are_repeatable_on_the_same_input() -> None:
    previous = [
        income(800, datetime(2024, 5, 3)),
        expense(300, datetime(2024, 5, 9), "Rent"),
    ]
    current = [
        income(1000, datetime(2024, 6, 1)),
        expense(250, datetime(2024, 6, 2), "Food"),
        expense(100, datetime(2024, 6, 3)),
        rec(TransactionType.transfer, 40, datetime(2024, 6, 4)),
    ]
    cards = [CardRecord(id=1, balance=900, is_active=True, last4="1234", bank_name="A")]
    everything = previous + current

    assert analytics.monthly_trend(everything) == analytics.monthly_trend(everything)
    assert analytics.category_spending(current, previous) == analytics.category_spending(
        current, previous
    )
    assert analytics.analytics_overview(
        everything, current, previous, 1
    ) == analytics.analytics_overview(everything, current, previous, 1)
    assert analytics.dashboard_stats(
        current, previous, cards, everything
    ) == analytics.dashboard_stats(current, previous, cards, everything)
