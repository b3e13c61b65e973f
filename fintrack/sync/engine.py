"""
Sync Engine

Keeps the signed-in user's local view of accounts, transactions and stocks
consistent with the remote document store, and keeps every account balance
equal to its opening balance plus the signed sum of its transactions.

State machine (per session):

    UNAUTHENTICATED --session--> LOADING --3 first snapshots--> READY
          ^                                                       |
          +----------------------- session lost -----------------+

DESIGN DECISION: Local state is a projection of store snapshots, never a
source of truth. Writes go to the store; local collections only change
when a snapshot replaces them wholesale.

DESIGN DECISION: Balance writes are serialized per account and guarded by
an `expected` balance precondition:
- The base balance is the last balance this engine committed for the
  account until a snapshot confirms it, else the cached snapshot balance
- A concurrent writer in another client makes the batch fail with a
  ConflictError instead of silently losing an update

Every mutation returns a WriteOutcome. Store failures never escape: they
are audited and kept as FailureNotices the UI can show, retry or dismiss.
"""

import asyncio
from collections import deque
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, ValidationError

from fintrack.audit import AuditLogger
from fintrack.models.audit import AuditEventBuilder
from fintrack.models.finance import (
    AccountDraft,
    AppState,
    BankAccount,
    StockDraft,
    StockHolding,
    Transaction,
    TransactionDraft,
    User,
    utc_now,
)
from fintrack.queries.summary import get_account_name
from fintrack.services.identity import IdentityGate, Session
from fintrack.services.storage import (
    ACCOUNTS,
    STOCKS,
    TRANSACTIONS,
    AlreadyExistsError,
    BatchOperation,
    ConflictError,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
    user_collection_path,
)
from fintrack.services.subscription import Subscription
from fintrack.sync.seed import DemoDataset, generate_demo_data


logger = structlog.get_logger(__name__)


# =============================================================================
# STATE & OUTCOMES
# =============================================================================

class SyncState(str, Enum):
    """Lifecycle of the engine for the current session."""
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    READY = "ready"


class OutcomeStatus(str, Enum):
    """How a mutation ended."""
    SUCCESS = "success"
    NO_SESSION = "no_session"      # nobody signed in, nothing written
    NOT_FOUND = "not_found"        # target unknown locally, nothing written
    SKIPPED = "skipped"            # nothing to do (e.g. data already seeded)
    CONFLICT = "conflict"          # balance changed underneath, batch rejected
    FAILED = "failed"              # store write failed, nothing applied


class WriteOutcome(BaseModel):
    """Result of one engine mutation."""

    status: OutcomeStatus
    operation: str
    entity_id: Optional[str] = None
    degraded: bool = Field(
        default=False,
        description="Write landed but skipped the balance update"
    )
    retryable: bool = False
    message: str = ""
    notice_id: Optional[str] = Field(
        default=None,
        description="FailureNotice recorded for this outcome, if any"
    )

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class FailureNotice(BaseModel):
    """
    A write that did not land, kept until retried or dismissed.

    `arguments` holds what `SyncEngine.retry` needs to re-run the write
    with the same entity id.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    operation: str
    entity_id: Optional[str] = None
    status: OutcomeStatus
    message: str
    retryable: bool
    occurred_at: datetime = Field(default_factory=utc_now)
    arguments: dict[str, Any] = Field(default_factory=dict, repr=False)


StateListener = Callable[[AppState], None]


# =============================================================================
# ENGINE
# =============================================================================

class SyncEngine:
    """
    Reconciles local state with the remote store for the current session.

    Construct once per process and share it; it follows the identity gate
    on its own (subscribes on construction, releases on `close()`).
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        identity: IdentityGate,
        audit_logger: Optional[AuditLogger] = None,
        failure_history_size: int = 50,
    ):
        self._store = store
        self._identity = identity
        self._audit = audit_logger or AuditLogger()

        self._sync_state = SyncState.UNAUTHENTICATED
        self._uid: Optional[str] = None
        self._user: Optional[User] = None
        self._accounts: tuple[BankAccount, ...] = ()
        self._transactions: tuple[Transaction, ...] = ()
        self._stocks: tuple[StockHolding, ...] = ()
        self._delivered: set[str] = set()
        self._subscriptions: list[Subscription] = []

        # Balance bookkeeping, per account id
        self._account_locks: dict[str, asyncio.Lock] = {}
        self._committed_balances: dict[str, Decimal] = {}

        self._failures: deque[FailureNotice] = deque(maxlen=failure_history_size)
        self._listeners: list[StateListener] = []

        self._session_subscription = identity.on_session_change(self._on_session_change)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def sync_state(self) -> SyncState:
        return self._sync_state

    @property
    def loading(self) -> bool:
        return self._sync_state == SyncState.LOADING

    @property
    def state(self) -> AppState:
        """Frozen projection of the current local state."""
        return AppState(
            user=self._user,
            accounts=self._accounts,
            transactions=self._transactions,
            stocks=self._stocks,
        )

    @property
    def failures(self) -> list[FailureNotice]:
        """Unresolved write failures, oldest first."""
        return list(self._failures)

    def get_account_name(self, account_id: str) -> str:
        return get_account_name(self._accounts, account_id)

    def add_listener(self, callback: StateListener) -> Subscription:
        """Call `callback` with a fresh AppState after every change."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return Subscription(_remove)

    def _emit(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("state_listener_failed")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _on_session_change(self, session: Optional[Session]) -> None:
        if session is None:
            if self._uid is not None:
                self._teardown()
            return

        if session.uid == self._uid:
            # Token refresh for the same user
            return

        if self._uid is not None:
            self._teardown()
        self._start(session)

    def _start(self, session: Session) -> None:
        uid = session.uid
        self._uid = uid
        self._user = User.from_identity(
            uid=uid,
            email=session.email,
            display_name=session.display_name,
            photo_url=session.photo_url,
        )
        self._delivered = set()
        self._sync_state = SyncState.LOADING
        self._audit.log(AuditEventBuilder.session_started(uid))
        self._emit()

        # Stores may deliver the first snapshot synchronously, inside subscribe
        self._subscriptions = [
            self._store.subscribe_collection(
                user_collection_path(uid, ACCOUNTS),
                lambda docs: self._on_snapshot(uid, ACCOUNTS, docs),
            ),
            self._store.subscribe_collection(
                user_collection_path(uid, TRANSACTIONS),
                lambda docs: self._on_snapshot(uid, TRANSACTIONS, docs),
                order_by="date",
                descending=True,
            ),
            self._store.subscribe_collection(
                user_collection_path(uid, STOCKS),
                lambda docs: self._on_snapshot(uid, STOCKS, docs),
            ),
        ]

    def _teardown(self) -> None:
        uid = self._uid
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

        self._uid = None
        self._user = None
        self._accounts = ()
        self._transactions = ()
        self._stocks = ()
        self._delivered = set()
        self._account_locks.clear()
        self._committed_balances.clear()
        # Notices carry paths of the old namespace; never replay them for another user
        self._failures.clear()
        self._sync_state = SyncState.UNAUTHENTICATED

        if uid is not None:
            self._audit.log(AuditEventBuilder.session_ended(uid))
        self._emit()

    def close(self) -> None:
        """Release every subscription. The engine is unusable afterwards."""
        self._session_subscription.cancel()
        if self._uid is not None:
            self._teardown()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _parse(self, uid: str, collection: str, model: type, docs: list[Document]) -> tuple:
        entities = []
        for doc in docs:
            try:
                entities.append(model.from_document(doc.id, doc.data))
            except ValidationError as e:
                self._audit.log(AuditEventBuilder.snapshot_document_rejected(
                    user_id=uid,
                    collection=collection,
                    doc_id=doc.id,
                    error_message=str(e),
                ))
        return tuple(entities)

    def _on_snapshot(self, uid: str, collection: str, docs: list[Document]) -> None:
        if uid != self._uid:
            # Late delivery for a session that already ended
            return

        if collection == ACCOUNTS:
            self._accounts = self._parse(uid, collection, BankAccount, docs)
            self._confirm_balances()
        elif collection == TRANSACTIONS:
            self._transactions = self._parse(uid, collection, Transaction, docs)
        else:
            self._stocks = self._parse(uid, collection, StockHolding, docs)

        self._delivered.add(collection)
        if self._sync_state == SyncState.LOADING and len(self._delivered) == 3:
            self._sync_state = SyncState.READY
            self._audit.log(AuditEventBuilder.sync_ready(uid, {
                ACCOUNTS: len(self._accounts),
                TRANSACTIONS: len(self._transactions),
                STOCKS: len(self._stocks),
            }))

        self._emit()

    def _confirm_balances(self) -> None:
        """Drop committed balances the latest accounts snapshot now shows."""
        by_id = {a.id: a for a in self._accounts}
        for account_id, committed in list(self._committed_balances.items()):
            account = by_id.get(account_id)
            if account is None or account.balance == committed:
                del self._committed_balances[account_id]

    # ------------------------------------------------------------------
    # Write plumbing
    # ------------------------------------------------------------------

    def _path(self, uid: str, collection: str) -> str:
        return user_collection_path(uid, collection)

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._account_locks.get(account_id)
        if lock is None:
            lock = self._account_locks[account_id] = asyncio.Lock()
        return lock

    def _base_balance(self, account_id: str) -> Optional[Decimal]:
        """Balance the next adjustment builds on, None if the account is unknown."""
        if account_id in self._committed_balances:
            return self._committed_balances[account_id]
        account = next((a for a in self._accounts if a.id == account_id), None)
        return account.balance if account is not None else None

    def _no_session(self, operation: str, entity_id: Optional[str] = None) -> WriteOutcome:
        return WriteOutcome(
            status=OutcomeStatus.NO_SESSION,
            operation=operation,
            entity_id=entity_id,
            message="Not signed in",
        )

    def _record_failure(
        self,
        uid: str,
        operation: str,
        entity_id: Optional[str],
        error: StorageError,
        arguments: dict[str, Any],
    ) -> WriteOutcome:
        if isinstance(error, ConflictError):
            status = OutcomeStatus.CONFLICT
            retryable = True
            self._audit.log_write_conflict(uid, operation, entity_id, str(error))
        else:
            status = OutcomeStatus.FAILED
            retryable = isinstance(error, (ConnectionError, NotFoundError))
            self._audit.log_write_failed(uid, operation, entity_id, str(error))

        notice = FailureNotice(
            operation=operation,
            entity_id=entity_id,
            status=status,
            message=str(error),
            retryable=retryable,
            arguments=arguments,
        )
        # Notices belong to the session that issued the write
        recorded = uid == self._uid
        if recorded:
            self._failures.append(notice)

        return WriteOutcome(
            status=status,
            operation=operation,
            entity_id=entity_id,
            retryable=retryable and recorded,
            message=str(error),
            notice_id=notice.id if recorded else None,
        )

    async def _adjust_and_commit(
        self,
        uid: str,
        operation: str,
        entity_id: str,
        account_id: str,
        delta: Decimal,
        entity_op: BatchOperation,
        arguments: dict[str, Any],
    ) -> tuple[WriteOutcome, Optional[Decimal]]:
        """
        Commit `entity_op` together with a balance adjustment of `delta`.

        `entity_op` carries its own existence precondition (a create, or a
        delete with `expected`). When that precondition fails the batch
        was already applied earlier, so nothing is written and the balance
        is not adjusted a second time.

        Returns the outcome and the balance written (None when skipped).
        """
        async with self._lock_for(account_id):
            if uid != self._uid:
                return self._no_session(operation, entity_id), None

            base = self._base_balance(account_id)
            operations = [entity_op]
            new_balance = None

            if base is not None:
                new_balance = base + delta
                operations.append(BatchOperation.update(
                    self._path(uid, ACCOUNTS),
                    account_id,
                    {"balance": str(new_balance)},
                    expected={"balance": str(base)},
                ))

            previous = self._committed_balances.get(account_id)
            if new_balance is not None:
                self._committed_balances[account_id] = new_balance

            try:
                await self._store.commit_batch(operations)
            except StorageError as e:
                if uid != self._uid:
                    # Session ended mid-write; its balances are already gone
                    return self._no_session(operation, entity_id), None

                targets_entity = e.path == entity_op.path and e.doc_id == entity_op.doc_id
                if new_balance is not None:
                    if previous is None or isinstance(e, (ConflictError, AlreadyExistsError)):
                        # The cache is behind; rebase on the next snapshot
                        self._committed_balances.pop(account_id, None)
                    else:
                        self._committed_balances[account_id] = previous

                if targets_entity and isinstance(e, AlreadyExistsError):
                    return WriteOutcome(
                        status=OutcomeStatus.SUCCESS,
                        operation=operation,
                        entity_id=entity_id,
                        message="Already recorded, balance unchanged",
                    ), None
                if targets_entity and isinstance(e, NotFoundError):
                    return WriteOutcome(
                        status=OutcomeStatus.NOT_FOUND,
                        operation=operation,
                        entity_id=entity_id,
                        message="Already removed, balance unchanged",
                    ), None
                return self._record_failure(uid, operation, entity_id, e, arguments), None

        if base is None:
            self._audit.log(AuditEventBuilder.balance_update_skipped(
                user_id=uid,
                transaction_id=entity_id,
                account_id=account_id,
            ))

        return WriteOutcome(
            status=OutcomeStatus.SUCCESS,
            operation=operation,
            entity_id=entity_id,
            degraded=base is None,
            message="Account not known locally, balance unchanged" if base is None else "",
        ), new_balance

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def add_account(self, draft: AccountDraft) -> WriteOutcome:
        """Create an account. No balance side effects."""
        return await self._add_account(draft, str(uuid4()))

    async def _add_account(self, draft: AccountDraft, account_id: str) -> WriteOutcome:
        uid = self._uid
        if uid is None:
            return self._no_session("add_account", account_id)

        account = BankAccount(id=account_id, **draft.model_dump())
        try:
            await self._store.upsert_document(
                self._path(uid, ACCOUNTS), account_id, account.to_document()
            )
        except StorageError as e:
            return self._record_failure(
                uid, "add_account", account_id, e, {"draft": draft}
            )

        self._audit.log(AuditEventBuilder.account_added(uid, account_id, account.name))
        return WriteOutcome(
            status=OutcomeStatus.SUCCESS, operation="add_account", entity_id=account_id
        )

    async def delete_account(self, account_id: str) -> WriteOutcome:
        """
        Delete an account.

        Referencing transactions are left in place; their account name
        resolves to "Unknown Account" from then on.
        """
        uid = self._uid
        if uid is None:
            return self._no_session("delete_account", account_id)

        try:
            await self._store.delete_document(self._path(uid, ACCOUNTS), account_id)
        except StorageError as e:
            return self._record_failure(uid, "delete_account", account_id, e, {})

        if uid == self._uid:
            self._committed_balances.pop(account_id, None)
        orphaned = sum(1 for t in self._transactions if t.account_id == account_id)
        self._audit.log(AuditEventBuilder.account_deleted(uid, account_id, orphaned))
        return WriteOutcome(
            status=OutcomeStatus.SUCCESS, operation="delete_account", entity_id=account_id
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def add_transaction(self, draft: TransactionDraft) -> WriteOutcome:
        """
        Record a transaction and adjust its account balance atomically.

        If the account is not known locally the transaction still lands,
        the balance update is skipped and the outcome is `degraded`.
        """
        return await self._add_transaction(draft, str(uuid4()))

    async def _add_transaction(self, draft: TransactionDraft, transaction_id: str) -> WriteOutcome:
        uid = self._uid
        if uid is None:
            return self._no_session("add_transaction", transaction_id)

        transaction = Transaction(id=transaction_id, **draft.model_dump())
        outcome, balance_after = await self._adjust_and_commit(
            uid,
            "add_transaction",
            transaction_id,
            transaction.account_id,
            transaction.signed_amount,
            BatchOperation.create(
                self._path(uid, TRANSACTIONS), transaction_id, transaction.to_document()
            ),
            {"draft": draft},
        )

        if outcome.ok:
            self._audit.log(AuditEventBuilder.transaction_added(
                user_id=uid,
                transaction_id=transaction_id,
                account_id=transaction.account_id,
                signed_amount=str(transaction.signed_amount),
                balance_after=str(balance_after) if balance_after is not None else None,
            ))
        return outcome

    async def delete_transaction(self, transaction_id: str) -> WriteOutcome:
        """Delete a transaction and reverse its balance effect atomically."""
        uid = self._uid
        if uid is None:
            return self._no_session("delete_transaction", transaction_id)

        transaction = next((t for t in self._transactions if t.id == transaction_id), None)
        if transaction is None:
            return WriteOutcome(
                status=OutcomeStatus.NOT_FOUND,
                operation="delete_transaction",
                entity_id=transaction_id,
                message="Transaction not found",
            )

        outcome, balance_after = await self._adjust_and_commit(
            uid,
            "delete_transaction",
            transaction_id,
            transaction.account_id,
            -transaction.signed_amount,
            BatchOperation.delete(
                self._path(uid, TRANSACTIONS),
                transaction_id,
                expected={"account_id": transaction.account_id},
            ),
            {},
        )

        if outcome.ok:
            self._audit.log(AuditEventBuilder.transaction_deleted(
                user_id=uid,
                transaction_id=transaction_id,
                account_id=transaction.account_id,
                balance_after=str(balance_after) if balance_after is not None else None,
            ))
        return outcome

    # ------------------------------------------------------------------
    # Stocks
    # ------------------------------------------------------------------

    async def add_stock(self, draft: StockDraft) -> WriteOutcome:
        """Add a holding stamped with the current time."""
        return await self._add_stock(draft, str(uuid4()))

    async def _add_stock(self, draft: StockDraft, stock_id: str) -> WriteOutcome:
        uid = self._uid
        if uid is None:
            return self._no_session("add_stock", stock_id)

        stock = StockHolding(
            id=stock_id,
            symbol=draft.symbol,
            name=draft.name,
            shares=draft.shares,
            average_cost=draft.average_cost,
            current_price=draft.current_price,
            last_updated=utc_now(),
        )
        try:
            await self._store.upsert_document(
                self._path(uid, STOCKS), stock_id, stock.to_document()
            )
        except StorageError as e:
            return self._record_failure(uid, "add_stock", stock_id, e, {"draft": draft})

        self._audit.log(AuditEventBuilder.stock_added(uid, stock_id, stock.symbol))
        return WriteOutcome(status=OutcomeStatus.SUCCESS, operation="add_stock", entity_id=stock_id)

    async def update_stock_price(self, stock_id: str, price: Decimal) -> WriteOutcome:
        """
        Set a holding's current price and refresh `last_updated`.

        Only those two fields are written (merge), so shares and cost are
        never overwritten by a price refresh.
        """
        uid = self._uid
        if uid is None:
            return self._no_session("update_stock_price", stock_id)

        price = Decimal(str(price))
        if price < 0:
            raise ValueError(f"Stock price must be non-negative, got {price}")

        if not any(s.id == stock_id for s in self._stocks):
            return WriteOutcome(
                status=OutcomeStatus.NOT_FOUND,
                operation="update_stock_price",
                entity_id=stock_id,
                message="Stock not found",
            )

        try:
            await self._store.upsert_document(
                self._path(uid, STOCKS),
                stock_id,
                {"current_price": str(price), "last_updated": utc_now().isoformat()},
                merge=True,
            )
        except StorageError as e:
            return self._record_failure(
                uid, "update_stock_price", stock_id, e, {"price": price}
            )

        self._audit.log(AuditEventBuilder.stock_price_updated(uid, stock_id, str(price)))
        return WriteOutcome(
            status=OutcomeStatus.SUCCESS, operation="update_stock_price", entity_id=stock_id
        )

    async def delete_stock(self, stock_id: str) -> WriteOutcome:
        uid = self._uid
        if uid is None:
            return self._no_session("delete_stock", stock_id)

        try:
            await self._store.delete_document(self._path(uid, STOCKS), stock_id)
        except StorageError as e:
            return self._record_failure(uid, "delete_stock", stock_id, e, {})

        self._audit.log(AuditEventBuilder.stock_deleted(uid, stock_id))
        return WriteOutcome(status=OutcomeStatus.SUCCESS, operation="delete_stock", entity_id=stock_id)

    # ------------------------------------------------------------------
    # Demo data
    # ------------------------------------------------------------------

    async def reset_data(self) -> WriteOutcome:
        """Write a fresh demo dataset in one atomic batch."""
        return await self._reset_data(generate_demo_data())

    async def _reset_data(self, dataset: DemoDataset) -> WriteOutcome:
        uid = self._uid
        if uid is None:
            return self._no_session("reset_data")

        operations = (
            [
                BatchOperation.upsert(self._path(uid, ACCOUNTS), a.id, a.to_document())
                for a in dataset.accounts
            ]
            + [
                BatchOperation.upsert(self._path(uid, TRANSACTIONS), t.id, t.to_document())
                for t in dataset.transactions
            ]
            + [
                BatchOperation.upsert(self._path(uid, STOCKS), s.id, s.to_document())
                for s in dataset.stocks
            ]
        )

        try:
            await self._store.commit_batch(operations)
        except StorageError as e:
            return self._record_failure(uid, "reset_data", None, e, {"dataset": dataset})

        self._audit.log(AuditEventBuilder.demo_data_seeded(uid, dataset.counts()))
        return WriteOutcome(status=OutcomeStatus.SUCCESS, operation="reset_data")

    async def seed_if_empty(self) -> WriteOutcome:
        """Bootstrap a new user: seed demo data only when they have no accounts."""
        uid = self._uid
        if uid is None:
            return self._no_session("seed_if_empty")

        try:
            existing = await self._store.get_collection(self._path(uid, ACCOUNTS))
        except StorageError as e:
            return self._record_failure(uid, "seed_if_empty", None, e, {})

        if existing:
            return WriteOutcome(
                status=OutcomeStatus.SKIPPED,
                operation="seed_if_empty",
                message=f"User already has {len(existing)} accounts",
            )
        return await self.reset_data()

    # ------------------------------------------------------------------
    # Failure notices
    # ------------------------------------------------------------------

    def dismiss_failure(self, notice_id: str) -> bool:
        """Forget a failure notice. Returns False if it was not found."""
        for notice in self._failures:
            if notice.id == notice_id:
                self._failures.remove(notice)
                return True
        return False

    async def retry(self, notice_id: str) -> WriteOutcome:
        """
        Re-run a failed write with the same entity id.

        Balances are recomputed from the current local state. A retry that
        fails again records a new notice.
        """
        notice = next((n for n in self._failures if n.id == notice_id), None)
        if notice is None:
            return WriteOutcome(
                status=OutcomeStatus.NOT_FOUND,
                operation="retry",
                entity_id=notice_id,
                message="No such failure notice",
            )

        self._failures.remove(notice)
        args = notice.arguments
        entity_id = notice.entity_id

        if notice.operation == "add_account":
            return await self._add_account(args["draft"], entity_id)
        if notice.operation == "delete_account":
            return await self.delete_account(entity_id)
        if notice.operation == "add_transaction":
            return await self._add_transaction(args["draft"], entity_id)
        if notice.operation == "delete_transaction":
            return await self.delete_transaction(entity_id)
        if notice.operation == "add_stock":
            return await self._add_stock(args["draft"], entity_id)
        if notice.operation == "update_stock_price":
            return await self.update_stock_price(entity_id, args["price"])
        if notice.operation == "delete_stock":
            return await self.delete_stock(entity_id)
        if notice.operation == "reset_data":
            return await self._reset_data(args["dataset"])
        if notice.operation == "seed_if_empty":
            return await self.seed_if_empty()

        raise ValueError(f"Unknown operation in failure notice: {notice.operation}")
