"""
Dashboard Queries

DESIGN DECISION: Queries are DETERMINISTIC functions over an AppState
projection. They never touch the store, so the numbers the advisor sees
are exactly the numbers the user sees.

The stock valuation is an explicitly approximate heuristic: symbols on
the home market count at face value, everything else is multiplied by a
fixed factor. There is no currency conversion here.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from fintrack.config import AppSettings
from fintrack.models.finance import (
    AppState,
    BankAccount,
    Category,
    StockHolding,
    Transaction,
    TransactionType,
)


UNKNOWN_ACCOUNT = "Unknown Account"
NO_TOP_CATEGORY = "None"


class CategoryTotal(BaseModel):
    """One slice of the expense breakdown."""
    name: str
    value: Decimal
    color: str


class DashboardSummary(BaseModel):
    """Aggregates shown on the dashboard and fed to the advisor."""

    total_cash: Decimal
    stock_value: Decimal = Field(..., description="Approximate, see estimate_stock_value")
    net_worth: Decimal
    monthly_income: Decimal
    monthly_expense: Decimal
    expense_by_category: list[CategoryTotal] = Field(default_factory=list)
    top_expense_category: str = NO_TOP_CATEGORY


def get_account_name(accounts: Iterable[BankAccount], account_id: str) -> str:
    """Name of the account, or a fixed sentinel for dangling references."""
    for account in accounts:
        if account.id == account_id:
            return account.name
    return UNKNOWN_ACCOUNT


def filter_transactions(
    transactions: Iterable[Transaction],
    type: Optional[TransactionType] = None,
) -> list[Transaction]:
    """All transactions, or only those of one type."""
    if type is None:
        return list(transactions)
    return [t for t in transactions if t.type == type]


def total_cash(accounts: Iterable[BankAccount]) -> Decimal:
    return sum((a.balance for a in accounts), Decimal("0"))


def estimate_stock_value(
    stocks: Iterable[StockHolding],
    home_suffix: str = ".TW",
    foreign_multiplier: Decimal = Decimal("32"),
) -> Decimal:
    """
    Rough portfolio value in home currency.

    Symbols containing `home_suffix` are valued at 1x, all others at
    `foreign_multiplier`x.
    """
    multiplier = Decimal(str(foreign_multiplier))
    total = Decimal("0")
    for stock in stocks:
        factor = Decimal("1") if home_suffix in stock.symbol else multiplier
        total += stock.market_value * factor
    return total


def _in_month(day: date, today: date) -> bool:
    return day.year == today.year and day.month == today.month


def monthly_totals(
    transactions: Iterable[Transaction],
    today: date,
) -> tuple[Decimal, Decimal]:
    """(income, expense) for the calendar month containing `today`."""
    income = Decimal("0")
    expense = Decimal("0")
    for txn in transactions:
        if not _in_month(txn.date, today):
            continue
        if txn.type == TransactionType.INCOME:
            income += txn.amount
        else:
            expense += txn.amount
    return income, expense


def expense_by_category(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    today: date,
) -> list[CategoryTotal]:
    """
    This month's expenses per EXPENSE category, largest first.

    Transactions are matched to categories by name. Categories with no
    spending are dropped.
    """
    month_expenses = [
        t for t in transactions
        if t.type == TransactionType.EXPENSE and _in_month(t.date, today)
    ]

    rows = []
    for category in categories:
        if category.type != TransactionType.EXPENSE:
            continue
        value = sum(
            (t.amount for t in month_expenses if t.category == category.name),
            Decimal("0"),
        )
        if value > 0:
            rows.append(CategoryTotal(name=category.name, value=value, color=category.color))

    return sorted(rows, key=lambda r: r.value, reverse=True)


def build_dashboard_summary(
    state: AppState,
    today: Optional[date] = None,
    settings: Optional[AppSettings] = None,
) -> DashboardSummary:
    """Every dashboard aggregate for one AppState."""
    today = today or date.today()
    home_suffix = settings.home_market_suffix if settings else ".TW"
    multiplier = Decimal(str(settings.foreign_stock_multiplier)) if settings else Decimal("32")

    cash = total_cash(state.accounts)
    stock_value = estimate_stock_value(state.stocks, home_suffix, multiplier)
    income, expense = monthly_totals(state.transactions, today)
    breakdown = expense_by_category(state.transactions, state.categories, today)

    return DashboardSummary(
        total_cash=cash,
        stock_value=stock_value,
        net_worth=cash + stock_value,
        monthly_income=income,
        monthly_expense=expense,
        expense_by_category=breakdown,
        top_expense_category=breakdown[0].name if breakdown else NO_TOP_CATEGORY,
    )
