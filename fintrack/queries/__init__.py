"""Dashboard query package."""

from fintrack.queries.summary import (
    NO_TOP_CATEGORY,
    UNKNOWN_ACCOUNT,
    CategoryTotal,
    DashboardSummary,
    build_dashboard_summary,
    estimate_stock_value,
    expense_by_category,
    filter_transactions,
    get_account_name,
    monthly_totals,
    total_cash,
)

__all__ = [
    "NO_TOP_CATEGORY",
    "UNKNOWN_ACCOUNT",
    "CategoryTotal",
    "DashboardSummary",
    "build_dashboard_summary",
    "estimate_stock_value",
    "expense_by_category",
    "filter_transactions",
    "get_account_name",
    "monthly_totals",
    "total_cash",
]
