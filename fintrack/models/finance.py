"""
Core Data Models for Personal Finance Tracking

These models define the schemas for every entity that flows between the
remote document store and the local state projection.

DESIGN DECISION: Entities are pure data. All behavior that touches more
than one entity (balance adjustment, demo seeding, dashboard totals) lives
in the sync engine or the query helpers, never on the models.

Documents are stored in JSON mode (`model_dump(mode="json")`), so Decimal
values travel as strings and dates as ISO strings. ISO dates sort
lexicographically in chronological order, which the store relies on when
ordering transactions by date.
"""

from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction relative to its account."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


def utc_now() -> datetime:
    """Timezone-aware current time, used for stock price stamps."""
    return datetime.now(timezone.utc)


# =============================================================================
# IDENTITY
# =============================================================================

class User(BaseModel):
    """
    The signed-in user as seen by the rest of the system.

    Derived from the identity provider's session; never persisted.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Provider user id")
    name: str = Field(..., description="Display name")
    email: str = Field(default="", description="Email address")
    avatar: Optional[str] = Field(default=None, description="Avatar image URI")

    @classmethod
    def from_identity(
        cls,
        uid: str,
        email: Optional[str],
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> "User":
        """Build a User, falling back to the email local part for the name."""
        name = display_name or (email.split("@")[0] if email else "") or "User"
        return cls(id=uid, name=name, email=email or "", avatar=photo_url or None)


# =============================================================================
# STORED ENTITIES
# =============================================================================

class StoredEntity(BaseModel):
    """Base for entities persisted as documents keyed by `id`."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1, description="Document id")

    def to_document(self) -> dict[str, Any]:
        """Document body for the store (the id is the document key)."""
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        return cls.model_validate({**data, "id": doc_id})


class BankAccount(StoredEntity):
    """
    A cash account owned by the signed-in user.

    INVARIANT: `balance` equals the opening balance plus the signed sum of
    every transaction that references this account. The sync engine is the
    only writer that keeps this true.
    """

    name: str = Field(..., min_length=1, max_length=100)
    bank_name: str = Field(default="", max_length=100)
    account_number: str = Field(
        default="",
        max_length=50,
        description="Display only, never validated"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed cash balance in the account currency"
    )
    currency: str = Field(default="TWD", max_length=10)
    color: str = Field(default="#3b82f6", max_length=20)


class Transaction(StoredEntity):
    """
    A single income or expense line against one account.

    `account_id` is a reference, not ownership: deleting the account leaves
    the transaction in place. `category` is matched against Category by
    name.
    """

    account_id: str = Field(..., min_length=1)
    date: date_type
    amount: Decimal = Field(..., ge=0, description="Unsigned amount")
    type: TransactionType
    category: str = Field(default="", max_length=100)
    note: str = Field(default="", max_length=500)

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on its account balance."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


class StockHolding(StoredEntity):
    """A position in one ticker. Price is updated independently of shares."""

    symbol: str = Field(..., min_length=1, max_length=20)
    name: str = Field(default="", max_length=100)
    shares: Decimal = Field(..., ge=0)
    average_cost: Decimal = Field(..., ge=0)
    current_price: Decimal = Field(..., ge=0)
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def market_value(self) -> Decimal:
        return self.shares * self.current_price

    @property
    def cost_basis(self) -> Decimal:
        return self.shares * self.average_cost

    @property
    def profit(self) -> Decimal:
        return self.market_value - self.cost_basis

    @property
    def profit_percent(self) -> Decimal:
        """Unrealized profit as a percentage of cost basis (0 when no cost)."""
        if self.cost_basis > 0:
            return self.profit / self.cost_basis * 100
        return Decimal("0")


class Category(BaseModel):
    """Static reference data; held in memory, never persisted."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: TransactionType
    color: str


# =============================================================================
# DRAFTS (operation input, no id yet)
# =============================================================================

class AccountDraft(BaseModel):
    """Fields the user supplies when opening an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    bank_name: str = Field(default="", max_length=100)
    account_number: str = Field(default="", max_length=50)
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance"
    )
    currency: str = Field(default="TWD", max_length=10)
    color: str = Field(default="#3b82f6", max_length=20)


class TransactionDraft(BaseModel):
    """Fields the user supplies when recording a transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: str = Field(..., min_length=1)
    date: date_type = Field(default_factory=date_type.today)
    amount: Decimal = Field(..., ge=0)
    type: TransactionType = TransactionType.EXPENSE
    category: str = Field(default="", max_length=100)
    note: str = Field(default="", max_length=500)


class StockDraft(BaseModel):
    """Fields the user supplies when adding a holding."""
    model_config = ConfigDict(str_strip_whitespace=True)

    symbol: str = Field(..., min_length=1, max_length=20)
    name: str = Field(default="", max_length=100)
    shares: Decimal = Field(..., ge=0)
    average_cost: Decimal = Field(default=Decimal("0"), ge=0)
    current_price: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Defaults to the average cost when not given"
    )

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def default_name_and_price(self) -> "StockDraft":
        if not self.name:
            self.name = self.symbol
        if self.current_price is None:
            self.current_price = self.average_cost
        return self


# =============================================================================
# REFERENCE DATA & STATE PROJECTION
# =============================================================================

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="c1", name="Salary", type=TransactionType.INCOME, color="#10b981"),
    Category(id="c2", name="Investment Income", type=TransactionType.INCOME, color="#3b82f6"),
    Category(id="c3", name="Food", type=TransactionType.EXPENSE, color="#f59e0b"),
    Category(id="c4", name="Transport", type=TransactionType.EXPENSE, color="#6366f1"),
    Category(id="c5", name="Housing", type=TransactionType.EXPENSE, color="#ef4444"),
    Category(id="c6", name="Entertainment", type=TransactionType.EXPENSE, color="#ec4899"),
    Category(id="c7", name="Other", type=TransactionType.EXPENSE, color="#94a3b8"),
)


class AppState(BaseModel):
    """
    Read-only snapshot of everything the presentation layer renders.

    Collections come from store snapshots; categories are constants and the
    user comes from the identity provider.
    """
    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    accounts: tuple[BankAccount, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    stocks: tuple[StockHolding, ...] = ()
    categories: tuple[Category, ...] = DEFAULT_CATEGORIES

    def find_account(self, account_id: str) -> Optional[BankAccount]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_stock(self, stock_id: str) -> Optional[StockHolding]:
        return next((s for s in self.stocks if s.id == stock_id), None)
