"""
fintrack - Source Package

Client-side state sync and balance consistency for a personal finance
tracker: bank accounts, income/expense transactions and a stock
portfolio, kept in step with a remote document store.

DESIGN PRINCIPLES:
1. The remote store is the source of truth, local state is a projection
2. A balance always equals its opening balance plus its transactions
3. Fail visibly: every write returns an outcome
4. Every write must be auditable
5. Storage and identity layers are swappable
"""

__version__ = "1.0.0"
__author__ = "fintrack Team"
