"""AI agents package."""

from fintrack.agents.advisor import (
    ADVICE_EMPTY_FALLBACK,
    ADVICE_ERROR_FALLBACK,
    ADVICE_NO_KEY_FALLBACK,
    FinancialAdvisorAgent,
    parse_price,
)

__all__ = [
    "ADVICE_EMPTY_FALLBACK",
    "ADVICE_ERROR_FALLBACK",
    "ADVICE_NO_KEY_FALLBACK",
    "FinancialAdvisorAgent",
    "parse_price",
]
