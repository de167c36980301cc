"""
GoalKeeper Data Models.

Defines the ledger's persistent state:
- Task: mutable per-task record owned by the ledger
- TaskView: immutable snapshot handed to readers
- TaskSummary: per-account dashboard counts
- LedgerState: the single explicit store every operation works on

Design Principles:
- One store object, no module-level state
- Readers only ever see copies (TaskView, tuples)
- Serializable to plain JSON-compatible dicts
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidAccount, InvalidAmount


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

PENALTY_RATE = 10  # percent of the staked balance charged per lapsed task
PERCENT_BASE = 100

NULL_ACCOUNT = "0x" + "0" * 40
NULL_TASK_ID = 0
FIRST_TASK_ID = 1

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_PENALIZED = "penalized"

_ACCOUNT_PATTERN = re.compile(r"^\S{1,128}$")


# -----------------------------------------------------------------------------
# Validation Helpers
# -----------------------------------------------------------------------------

def validate_account(account: Any) -> str:
    """Reject empty, whitespace-bearing, non-string or null account ids."""
    if not isinstance(account, str) or not _ACCOUNT_PATTERN.match(account):
        raise InvalidAccount(account)
    if account.lower() == NULL_ACCOUNT:
        raise InvalidAccount(account)
    return account


def validate_amount(amount: Any, *, allow_zero: bool = False) -> int:
    """Amounts are plain non-negative ints; bools are not amounts."""
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(amount, "amount must be an integer number of base units")
    if amount < 0:
        raise InvalidAmount(amount, "amount must not be negative")
    if amount == 0 and not allow_zero:
        raise InvalidAmount(amount, "amount must be greater than zero")
    return amount


def compute_penalty(balance: int, rate: int = PENALTY_RATE) -> int:
    """floor(balance * rate / 100)."""
    return balance * rate // PERCENT_BASE


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------

@dataclass
class Task:
    """
    A time-boxed obligation registered against its owner's stake.

    Invariants:
    - owner never changes after creation
    - at most one of completed / penalized is True, and neither is reset
    """
    task_id: int
    owner: str
    description: str
    deadline: int
    completed: bool = False
    penalized: bool = False

    @property
    def is_open(self) -> bool:
        return not self.completed and not self.penalized

    def view(self) -> "TaskView":
        return TaskView(
            task_id=self.task_id,
            owner=self.owner,
            description=self.description,
            deadline=self.deadline,
            completed=self.completed,
            penalized=self.penalized,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "owner": self.owner,
            "description": self.description,
            "deadline": self.deadline,
            "completed": self.completed,
            "penalized": self.penalized,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            task_id=int(data["task_id"]),
            owner=str(data["owner"]),
            description=str(data.get("description", "")),
            deadline=int(data["deadline"]),
            completed=bool(data.get("completed", False)),
            penalized=bool(data.get("penalized", False)),
        )


@dataclass(frozen=True)
class TaskView:
    """
    Read-only copy of a task record.

    The zero record (``TaskView.empty()``) stands in for unknown ids; its
    owner is NULL_ACCOUNT, which is how callers tell "missing" from "open".
    """
    task_id: int
    owner: str
    description: str
    deadline: int
    completed: bool
    penalized: bool

    @classmethod
    def empty(cls) -> "TaskView":
        return cls(
            task_id=NULL_TASK_ID,
            owner=NULL_ACCOUNT,
            description="",
            deadline=0,
            completed=False,
            penalized=False,
        )

    @property
    def exists(self) -> bool:
        return self.owner != NULL_ACCOUNT

    @property
    def status(self) -> str:
        if self.completed:
            return STATUS_COMPLETED
        if self.penalized:
            return STATUS_PENALIZED
        return STATUS_ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "owner": self.owner,
            "description": self.description,
            "deadline": self.deadline,
            "completed": self.completed,
            "penalized": self.penalized,
            "status": self.status,
        }


@dataclass(frozen=True)
class TaskSummary:
    """Per-account task counts for dashboards."""
    active: int = 0
    completed: int = 0
    penalized: int = 0
    lapsed: int = 0  # active tasks past their deadline, awaiting evaluation

    @property
    def total(self) -> int:
        return self.active + self.completed + self.penalized


# -----------------------------------------------------------------------------
# Ledger State
# -----------------------------------------------------------------------------

@dataclass
class LedgerState:
    """
    The complete ledger store.

    Holds the account -> balance map, task id -> record map,
    account -> task id index, the penalty pool, the owner identity and the
    id counter. Engines hold a reference to one LedgerState; tests build a
    fresh one each time.
    """
    owner: str
    balances: Dict[str, int] = field(default_factory=dict)
    tasks: Dict[int, Task] = field(default_factory=dict)
    task_index: Dict[str, List[int]] = field(default_factory=dict)
    penalty_pool: int = 0
    next_task_id: int = FIRST_TASK_ID

    def __post_init__(self) -> None:
        validate_account(self.owner)
        if self.penalty_pool < 0:
            raise ValueError("penalty_pool must be non-negative")
        if self.next_task_id < FIRST_TASK_ID:
            raise ValueError(f"next_task_id must be >= {FIRST_TASK_ID}")

    # -- reads ----------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def task_ids_of(self, account: str) -> Tuple[int, ...]:
        return tuple(self.task_index.get(account, ()))

    def get_task(self, task_id: int) -> Optional[Task]:
        # True == 1 as a dict key; bools are never task ids
        if not isinstance(task_id, int) or isinstance(task_id, bool):
            return None
        return self.tasks.get(task_id)

    @property
    def total_staked(self) -> int:
        return sum(self.balances.values())

    @property
    def total_liabilities(self) -> int:
        """Everything the ledger owes: stakes plus the penalty pool."""
        return self.total_staked + self.penalty_pool

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "balances": dict(sorted(self.balances.items())),
            "tasks": [self.tasks[tid].to_dict() for tid in sorted(self.tasks)],
            "task_index": {acct: list(ids) for acct, ids in sorted(self.task_index.items())},
            "penalty_pool": self.penalty_pool,
            "next_task_id": self.next_task_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerState":
        tasks = [Task.from_dict(raw) for raw in data.get("tasks", [])]
        state = cls(
            owner=data["owner"],
            balances={str(k): int(v) for k, v in data.get("balances", {}).items()},
            tasks={task.task_id: task for task in tasks},
            task_index={str(k): [int(i) for i in v] for k, v in data.get("task_index", {}).items()},
            penalty_pool=int(data.get("penalty_pool", 0)),
            next_task_id=int(data.get("next_task_id", FIRST_TASK_ID)),
        )
        if any(balance < 0 for balance in state.balances.values()):
            raise ValueError("balances must be non-negative")
        return state
