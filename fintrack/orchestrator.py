"""
Main Orchestrator for fintrack

This module ties together all the components the presentation layer
talks to:
1. Identity (sign-in / register / sign-out through the IdentityGate)
2. State sync (the SyncEngine's AppState projection and mutations)
3. Advice and price lookups (the FinancialAdvisorAgent)

DESIGN DECISION: FinanceContext is an explicit service object, built once
per process by `create_app_components()` and passed to whoever needs it.
There is no module-level singleton.

The orchestrator enforces the boundaries:
- AI replies never reach the store without going through the engine
- Every write returns a WriteOutcome the UI can act on
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from fintrack.agents import FinancialAdvisorAgent
from fintrack.audit import AuditLogger
from fintrack.config import AppSettings, get_settings
from fintrack.models.finance import (
    AccountDraft,
    AppState,
    StockDraft,
    TransactionDraft,
)
from fintrack.queries import DashboardSummary, build_dashboard_summary
from fintrack.services.identity import (
    FirebaseIdentityProvider,
    IdentityGate,
    IdentityProviderInterface,
    Session,
)
from fintrack.services.storage import (
    DocumentStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)
from fintrack.services.subscription import Subscription
from fintrack.sync import (
    FailureNotice,
    OutcomeStatus,
    SyncEngine,
    WriteOutcome,
)


logger = structlog.get_logger(__name__)


class FinanceContext:
    """
    Everything the presentation layer needs, behind one object.

    Exposes:
    - the AppState projection and a change listener
    - every SyncEngine operation, unchanged
    - AI price refresh and dashboard advice
    """

    def __init__(
        self,
        identity: IdentityGate,
        engine: SyncEngine,
        advisor: FinancialAdvisorAgent,
        store: DocumentStoreInterface,
        audit_logger: AuditLogger,
        settings: Optional[AppSettings] = None,
    ):
        self._identity = identity
        self._engine = engine
        self._advisor = advisor
        self._store = store
        self._audit = audit_logger
        self._settings = settings

    @property
    def identity(self) -> IdentityGate:
        return self._identity

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._engine.state

    @property
    def loading(self) -> bool:
        return self._engine.loading

    @property
    def failures(self) -> list[FailureNotice]:
        return self._engine.failures

    def subscribe(self, callback) -> Subscription:
        """Call `callback(AppState)` after every state change."""
        return self._engine.add_listener(callback)

    def get_account_name(self, account_id: str) -> str:
        return self._engine.get_account_name(account_id)

    def dashboard(self, today: Optional[date] = None) -> DashboardSummary:
        return build_dashboard_summary(self.state, today, self._settings)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Session:
        return await self._identity.sign_in(email, password)

    async def register(self, email: str, password: str, display_name: str) -> Session:
        """Create the account, sign in and bootstrap the demo dataset."""
        session = await self._identity.register(email, password, display_name)
        await self._engine.seed_if_empty()
        return session

    async def logout(self) -> None:
        await self._identity.sign_out()

    # ------------------------------------------------------------------
    # Engine operations
    # ------------------------------------------------------------------

    async def add_account(self, draft: AccountDraft) -> WriteOutcome:
        return await self._engine.add_account(draft)

    async def delete_account(self, account_id: str) -> WriteOutcome:
        return await self._engine.delete_account(account_id)

    async def add_transaction(self, draft: TransactionDraft) -> WriteOutcome:
        return await self._engine.add_transaction(draft)

    async def delete_transaction(self, transaction_id: str) -> WriteOutcome:
        return await self._engine.delete_transaction(transaction_id)

    async def add_stock(self, draft: StockDraft) -> WriteOutcome:
        return await self._engine.add_stock(draft)

    async def update_stock_price(self, stock_id: str, price: Decimal) -> WriteOutcome:
        return await self._engine.update_stock_price(stock_id, price)

    async def delete_stock(self, stock_id: str) -> WriteOutcome:
        return await self._engine.delete_stock(stock_id)

    async def reset_data(self) -> WriteOutcome:
        return await self._engine.reset_data()

    async def retry(self, notice_id: str) -> WriteOutcome:
        return await self._engine.retry(notice_id)

    def dismiss_failure(self, notice_id: str) -> bool:
        return self._engine.dismiss_failure(notice_id)

    # ------------------------------------------------------------------
    # AI helpers
    # ------------------------------------------------------------------

    async def refresh_stock_price(self, stock_id: str) -> WriteOutcome:
        """
        Look up the latest price with the advisor and store it.

        A lookup that returns nothing writes nothing and yields a FAILED
        outcome with a "couldn't fetch" message.
        """
        stock = self.state.find_stock(stock_id)
        if stock is None:
            return WriteOutcome(
                status=OutcomeStatus.NOT_FOUND,
                operation="refresh_stock_price",
                entity_id=stock_id,
                message="Stock not found",
            )

        price = await self._advisor.fetch_stock_price(stock.symbol, stock.name)
        if price is None:
            return WriteOutcome(
                status=OutcomeStatus.FAILED,
                operation="refresh_stock_price",
                entity_id=stock_id,
                retryable=True,
                message=f"Couldn't fetch the latest price for {stock.name} ({stock.symbol}).",
            )

        return await self._engine.update_stock_price(stock_id, price)

    async def generate_advice(self, today: Optional[date] = None) -> Optional[str]:
        """
        Advice text for the dashboard.

        Returns None without calling the model when there is nothing to
        advise on (net worth is 0).
        """
        summary = self.dashboard(today)
        if summary.net_worth == 0:
            return None

        return await self._advisor.generate_advice(
            net_worth=summary.net_worth,
            monthly_income=summary.monthly_income,
            monthly_expense=summary.monthly_expense,
            top_expense_category=summary.top_expense_category,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop syncing and release store resources."""
        self._engine.close()
        self._identity.close()
        await self._store.close()


def create_app_components(
    use_google_sheets: bool = True,
    identity_provider: Optional[IdentityProviderInterface] = None,
) -> FinanceContext:
    """
    Factory function to create all application components.

    Args:
        use_google_sheets: Whether to use Google Sheets as the remote store.
                           Falls back to the in-memory store when False or
                           when Sheets is not configured.
        identity_provider: Provider to authenticate with. Defaults to
                           Firebase Authentication from settings.

    Returns:
        A fully wired FinanceContext
    """
    settings = get_settings()
    app_settings = settings.app
    audit_logger = AuditLogger(history_size=app_settings.audit_history_size)

    store: DocumentStoreInterface
    if use_google_sheets:
        try:
            store = GoogleSheetsDocumentStore(GoogleSheetsClient())
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("google_sheets_not_configured", error=str(e))
            store = InMemoryDocumentStore()
    else:
        store = InMemoryDocumentStore()

    identity = IdentityGate(identity_provider or FirebaseIdentityProvider())
    engine = SyncEngine(
        store,
        identity,
        audit_logger=audit_logger,
        failure_history_size=app_settings.failure_history_size,
    )
    advisor = FinancialAdvisorAgent(audit_logger=audit_logger)

    return FinanceContext(
        identity=identity,
        engine=engine,
        advisor=advisor,
        store=store,
        audit_logger=audit_logger,
        settings=app_settings,
    )
