"""State synchronization package."""

from fintrack.sync.engine import (
    FailureNotice,
    OutcomeStatus,
    SyncEngine,
    SyncState,
    WriteOutcome,
)
from fintrack.sync.seed import DemoDataset, generate_demo_data

__all__ = [
    "FailureNotice",
    "OutcomeStatus",
    "SyncEngine",
    "SyncState",
    "WriteOutcome",
    "DemoDataset",
    "generate_demo_data",
]
