"""
Demo Data Seeder

Produces the starter dataset a brand-new user is bootstrapped with: two
accounts, five transactions and three stock holdings.

DESIGN DECISION: The stated account balances are POST-transaction
balances. 150000 and 500000 already include the seeded transactions, so
the implied opening balance of each account is its balance minus the
signed sum of its seeded transactions (see `opening_balances`). This keeps
the balance invariant true for the seeded data: deleting every seeded
transaction through the sync engine brings each account back to its
opening balance.

Pure function: no I/O. Persisting the dataset is the sync engine's job
(`SyncEngine.reset_data`).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel

from fintrack.models.finance import (
    BankAccount,
    StockHolding,
    Transaction,
    TransactionType,
    utc_now,
)


class DemoDataset(BaseModel):
    """A consistent set of entities ready to be written in one batch."""

    accounts: list[BankAccount]
    transactions: list[Transaction]
    stocks: list[StockHolding]

    def counts(self) -> dict[str, int]:
        return {
            "accounts": len(self.accounts),
            "transactions": len(self.transactions),
            "stocks": len(self.stocks),
        }

    def opening_balances(self) -> dict[str, Decimal]:
        """Balance each account held before its seeded transactions."""
        opening = {a.id: a.balance for a in self.accounts}
        for txn in self.transactions:
            if txn.account_id in opening:
                opening[txn.account_id] -= txn.signed_amount
        return opening


def _new_id() -> str:
    return str(uuid4())


def generate_demo_data(now: Optional[datetime] = None) -> DemoDataset:
    """
    Build a fresh demo dataset.

    Args:
        now: Timestamp stamped on every stock's `last_updated`
             (defaults to the current UTC time)

    Returns:
        DemoDataset with new ids on every call
    """
    stamp = now or utc_now()
    salary_account = _new_id()
    reserve_account = _new_id()

    accounts = [
        BankAccount(
            id=salary_account,
            name="Main salary account",
            bank_name="CTBC Bank",
            account_number="822-123456789",
            balance=Decimal("150000"),
            currency="TWD",
            color="#16a34a",
        ),
        BankAccount(
            id=reserve_account,
            name="Investment reserve",
            bank_name="Cathay United Bank",
            account_number="013-987654321",
            balance=Decimal("500000"),
            currency="TWD",
            color="#ea580c",
        ),
    ]

    # (account, date, amount, type, category, note)
    rows = [
        (salary_account, date(2023, 10, 1), "65000", TransactionType.INCOME, "Salary", "October salary"),
        (salary_account, date(2023, 10, 2), "12000", TransactionType.EXPENSE, "Housing", "Rent"),
        (salary_account, date(2023, 10, 3), "350", TransactionType.EXPENSE, "Food", "Dinner with friends"),
        (salary_account, date(2023, 10, 5), "1200", TransactionType.EXPENSE, "Transport", "Fuel"),
        (reserve_account, date(2023, 10, 10), "5000", TransactionType.INCOME, "Investment Income", "Dividend received"),
    ]
    transactions = [
        Transaction(
            id=_new_id(),
            account_id=account_id,
            date=day,
            amount=Decimal(amount),
            type=txn_type,
            category=category,
            note=note,
        )
        for account_id, day, amount, txn_type, category, note in rows
    ]

    stocks = [
        StockHolding(
            id=_new_id(),
            symbol=symbol,
            name=name,
            shares=Decimal(shares),
            average_cost=Decimal(cost),
            current_price=Decimal(price),
            last_updated=stamp,
        )
        for symbol, name, shares, cost, price in [
            ("2330.TW", "TSMC", "1000", "550", "1050"),
            ("2317.TW", "Hon Hai", "2000", "105", "200"),
            ("NVDA", "NVIDIA", "20", "450", "1200"),
        ]
    ]

    return DemoDataset(accounts=accounts, transactions=transactions, stocks=stocks)
