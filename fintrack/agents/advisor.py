"""
Financial Advisor Agent

DESIGN DECISION: The LLM is a best-effort helper, never a source of truth.

BOUNDARIES:

1. PRICE LOOKUP:
   - CAN: Suggest a current price for one holding, grounded with Google
     Search unless GEMINI_PRICE_SEARCH_TOOL is empty
   - CANNOT: Write anything; the caller decides whether to store it
   - Returns None on any failure, never raises

2. ADVICE:
   - CAN: Phrase short advice FROM the dashboard aggregates it is given
   - CANNOT: See individual transactions or accounts
   - Falls back to fixed text on any failure, never raises

Single attempt, no retries: a stale price or a generic sentence is an
acceptable result here.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

import google.generativeai as genai
import structlog

from fintrack.audit import AuditLogger
from fintrack.config import GeminiSettings, get_settings


logger = structlog.get_logger(__name__)

ADVICE_NO_KEY_FALLBACK = "Can't reach the AI service to generate advice (API key not configured)."
ADVICE_EMPTY_FALLBACK = "No advice is available right now."
ADVICE_ERROR_FALLBACK = "The service is busy, please try again later."

_NUMBER = re.compile(r"\d*\.?\d+")


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Pull a price out of a model reply.

    Everything but digits and "." is dropped first, so "NT$1,050.00"
    becomes 1050.00. Returns None when nothing numeric is left.
    """
    if not text:
        return None
    cleaned = re.sub(r"[^0-9.]", "", text.strip())
    match = _NUMBER.match(cleaned)
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


class FinancialAdvisorAgent:
    """
    Gemini-backed price lookup and advice text.

    Without an API key every call degrades immediately (None or the
    no-key fallback) and no model is created.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._audit = audit_logger
        self._model = None
        if self._settings.api_key:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @property
    def available(self) -> bool:
        return self._model is not None

    def _price_tools(self):
        """Search grounding tool for price lookups, or None when disabled."""
        tool = self._settings.price_search_tool
        if tool == "google_search":
            return [genai.protos.Tool(google_search=genai.protos.Tool.GoogleSearch())]
        if tool == "google_search_retrieval":
            return tool
        return None

    def _report(self, operation: str, error: Exception) -> None:
        logger.warning("advisor_call_failed", operation=operation, error=str(error))
        if self._audit:
            self._audit.log_external_service_error("gemini", f"{operation}: {error}")

    async def fetch_stock_price(self, symbol: str, name: str) -> Optional[Decimal]:
        """
        Ask the model for the latest price of one holding.

        Returns None on missing key, empty or non-numeric reply, or error.
        """
        if self._model is None:
            logger.warning("gemini_api_key_missing", operation="fetch_stock_price")
            return None

        prompt = f"""Find the current real-time stock price for {name} ({symbol}).
If it is a Taiwan stock, look for TWSE data.
If it is a US stock, look for US market data.
Return ONLY the numeric price value. Do not include currency symbols or text."""

        tools = self._price_tools()
        try:
            if tools is None:
                response = await self._model.generate_content_async(prompt)
            else:
                response = await self._model.generate_content_async(prompt, tools=tools)
            text = response.text
        except Exception as e:
            self._report("fetch_stock_price", e)
            return None

        return parse_price(text)

    async def generate_advice(
        self,
        net_worth: Decimal,
        monthly_income: Decimal,
        monthly_expense: Decimal,
        top_expense_category: str,
    ) -> str:
        """Short, encouraging advice built from dashboard totals. Never raises."""
        if self._model is None:
            return ADVICE_NO_KEY_FALLBACK

        prompt = f"""You are a professional financial advisor.
Based on the figures below, give one short piece of personal finance advice
(under 100 words):

Net worth: {net_worth}
Income this month: {monthly_income}
Expenses this month: {monthly_expense}
Largest expense category: {top_expense_category}

Be specific and encouraging."""

        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            self._report("generate_advice", e)
            return ADVICE_ERROR_FALLBACK

        return text or ADVICE_EMPTY_FALLBACK
