"""
Tests for the dashboard queries.
"""

from datetime import date
from decimal import Decimal

from fintrack.config import AppSettings
from fintrack.models.finance import (
    DEFAULT_CATEGORIES,
    AppState,
    BankAccount,
    StockHolding,
    Transaction,
    TransactionType,
)
from fintrack.queries import (
    build_dashboard_summary,
    estimate_stock_value,
    expense_by_category,
    filter_transactions,
    get_account_name,
    monthly_totals,
    total_cash,
)


TODAY = date(2024, 5, 15)


def txn(id, amount, type, category, day=date(2024, 5, 3), account_id="a1"):
    return Transaction(
        id=id,
        account_id=account_id,
        date=day,
        amount=Decimal(amount),
        type=type,
        category=category,
    )


def stock(symbol, shares, price):
    return StockHolding(
        id=symbol,
        symbol=symbol,
        shares=Decimal(shares),
        average_cost=Decimal("1"),
        current_price=Decimal(price),
    )


ACCOUNTS = (
    BankAccount(id="a1", name="Main", balance=Decimal("150000")),
    BankAccount(id="a2", name="Reserve", balance=Decimal("500000")),
)

TRANSACTIONS = (
    txn("t1", "65000", TransactionType.INCOME, "Salary"),
    txn("t2", "12000", TransactionType.EXPENSE, "Housing"),
    txn("t3", "350", TransactionType.EXPENSE, "Food"),
    txn("t4", "1200", TransactionType.EXPENSE, "Transport"),
    txn("t5", "400", TransactionType.EXPENSE, "Food"),
    # Last month: ignored by monthly figures
    txn("t6", "9999", TransactionType.EXPENSE, "Entertainment", day=date(2024, 4, 30)),
    # Same month, previous year
    txn("t7", "8888", TransactionType.INCOME, "Salary", day=date(2023, 5, 10)),
)


class TestLookups:
    """Tests for account and transaction lookups."""

    def test_get_account_name(self):
        assert get_account_name(ACCOUNTS, "a2") == "Reserve"

    def test_get_account_name_dangling(self):
        assert get_account_name(ACCOUNTS, "deleted") == "Unknown Account"

    def test_filter_transactions(self):
        assert len(filter_transactions(TRANSACTIONS)) == 7
        incomes = filter_transactions(TRANSACTIONS, TransactionType.INCOME)
        assert {t.id for t in incomes} == {"t1", "t7"}


class TestTotals:
    """Tests for cash, stock and monthly totals."""

    def test_total_cash(self):
        assert total_cash(ACCOUNTS) == Decimal("650000")
        assert total_cash(()) == Decimal("0")

    def test_stock_value_heuristic(self):
        """Home-market symbols at 1x, everything else at the fixed multiplier."""
        stocks = [stock("2330.TW", "1000", "1050"), stock("NVDA", "20", "1200")]
        assert estimate_stock_value(stocks) == Decimal("1050000") + Decimal("768000")

    def test_stock_value_custom_multiplier(self):
        stocks = [stock("NVDA", "1", "100")]
        assert estimate_stock_value(stocks, foreign_multiplier=Decimal("30")) == Decimal("3000")

    def test_monthly_totals(self):
        income, expense = monthly_totals(TRANSACTIONS, TODAY)
        assert income == Decimal("65000")
        assert expense == Decimal("13950")

    def test_expense_by_category(self):
        """Current month, expense only, zero rows dropped, largest first."""
        rows = expense_by_category(TRANSACTIONS, DEFAULT_CATEGORIES, TODAY)

        assert [(r.name, r.value) for r in rows] == [
            ("Housing", Decimal("12000")),
            ("Transport", Decimal("1200")),
            ("Food", Decimal("750")),
        ]
        assert rows[0].color == "#ef4444"


class TestDashboardSummary:
    """Tests for build_dashboard_summary."""

    def test_summary(self):
        state = AppState(
            accounts=ACCOUNTS,
            transactions=TRANSACTIONS,
            stocks=(stock("2330.TW", "10", "100"),),
        )

        summary = build_dashboard_summary(state, TODAY)

        assert summary.total_cash == Decimal("650000")
        assert summary.stock_value == Decimal("1000")
        assert summary.net_worth == Decimal("651000")
        assert summary.monthly_income == Decimal("65000")
        assert summary.top_expense_category == "Housing"

    def test_empty_state(self):
        summary = build_dashboard_summary(AppState(), TODAY)

        assert summary.net_worth == Decimal("0")
        assert summary.expense_by_category == []
        assert summary.top_expense_category == "None"

    def test_settings_drive_heuristic(self):
        settings = AppSettings(home_market_suffix=".US", foreign_stock_multiplier=2.0)
        state = AppState(stocks=(stock("AAPL.US", "1", "10"), stock("2330.TW", "1", "10")))

        summary = build_dashboard_summary(state, TODAY, settings)

        assert summary.stock_value == Decimal("30")
