"""
GoalKeeper Ledger - stake-and-penalty commitment accounting.

Provides:
- Per-account staked balances and a segregated, owner-withdrawable penalty pool
- A task registry with a terminal completed / penalized state machine
- Deadline-triggered penalties, per task or swept during withdrawal
- Verified custodial transfers with full rollback on failure
"""

from .models import (
    NULL_ACCOUNT,
    PENALTY_RATE,
    LedgerState,
    Task,
    TaskSummary,
    TaskView,
    compute_penalty,
)
from .errors import (
    AuthorizationError,
    DeadlineMustBeInFuture,
    DeadlineNotPassed,
    DeadlinePassed,
    ExternalTransferError,
    InsufficientBalance,
    InsufficientExternalAllowance,
    InsufficientExternalBalance,
    InsufficientPenaltyBalance,
    InvalidAccount,
    InvalidAmount,
    InvariantViolation,
    LedgerError,
    NoStakedTokens,
    NotTaskOwner,
    PreconditionError,
    ReentrantCall,
    TaskAlreadyCompleted,
    TaskAlreadyPenalized,
    TaskNotFound,
    TransferIntegrityFailure,
    Unauthorized,
)
from .hooks import (
    LedgerEvent,
    LedgerHooks,
    LoggingHooks,
    NullHooks,
    PenaltyApplied,
    PenaltyWithdrawn,
    TaskCompleted,
    TaskCreated,
    TokensStaked,
    TokensWithdrawn,
)
from .clock import Clock, ManualClock, SystemClock
from .token import CustodialToken, InMemoryToken
from .config import (
    GoalKeeperConfig,
    LedgerConfig,
    LoggingConfig,
    StorageConfig,
    get_config,
    reset_config,
    set_config,
)
from .invariants import InvariantResult, check_invariants
from .storage import SnapshotError, load_snapshot, save_snapshot
from .units import format_units, parse_units
from .engine import GoalKeeper

__all__ = [
    # Models
    "NULL_ACCOUNT",
    "PENALTY_RATE",
    "LedgerState",
    "Task",
    "TaskSummary",
    "TaskView",
    "compute_penalty",
    # Errors
    "AuthorizationError",
    "DeadlineMustBeInFuture",
    "DeadlineNotPassed",
    "DeadlinePassed",
    "ExternalTransferError",
    "InsufficientBalance",
    "InsufficientExternalAllowance",
    "InsufficientExternalBalance",
    "InsufficientPenaltyBalance",
    "InvalidAccount",
    "InvalidAmount",
    "InvariantViolation",
    "LedgerError",
    "NoStakedTokens",
    "NotTaskOwner",
    "PreconditionError",
    "ReentrantCall",
    "TaskAlreadyCompleted",
    "TaskAlreadyPenalized",
    "TaskNotFound",
    "TransferIntegrityFailure",
    "Unauthorized",
    # Events / hooks
    "LedgerEvent",
    "LedgerHooks",
    "LoggingHooks",
    "NullHooks",
    "PenaltyApplied",
    "PenaltyWithdrawn",
    "TaskCompleted",
    "TaskCreated",
    "TokensStaked",
    "TokensWithdrawn",
    # Collaborators
    "Clock",
    "ManualClock",
    "SystemClock",
    "CustodialToken",
    "InMemoryToken",
    # Config
    "GoalKeeperConfig",
    "LedgerConfig",
    "LoggingConfig",
    "StorageConfig",
    "get_config",
    "reset_config",
    "set_config",
    # Invariants / storage / units
    "InvariantResult",
    "check_invariants",
    "SnapshotError",
    "load_snapshot",
    "save_snapshot",
    "format_units",
    "parse_units",
    # Engine
    "GoalKeeper",
]
