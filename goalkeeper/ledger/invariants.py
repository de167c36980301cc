"""Ledger invariant checking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import LedgerState


@dataclass
class InvariantMeta:
    """Invariant metadata."""
    id: str
    label: str
    description: str
    formula: str


INVARIANTS: Dict[str, InvariantMeta] = {
    "conservation": InvariantMeta(
        id="conservation",
        label="Custodial Conservation",
        description="The ledger never owes more than it holds in custody",
        formula="sum(balances) + penalty_pool <= custody_holdings",
    ),
    "non_negative": InvariantMeta(
        id="non_negative",
        label="Non-negativity",
        description="No balance and not the penalty pool may go below zero",
        formula="balance >= 0 for all accounts; penalty_pool >= 0",
    ),
    "terminal_flags": InvariantMeta(
        id="terminal_flags",
        label="Exclusive Terminal Flags",
        description="A task is never both completed and penalized",
        formula="not (completed and penalized)",
    ),
    "index_consistency": InvariantMeta(
        id="index_consistency",
        label="Task Index Consistency",
        description="Every task appears exactly once, in its owner's index",
        formula="task_id in task_index[task.owner]; ids < next_task_id",
    ),
}


@dataclass(frozen=True)
class InvariantResult:
    name: str
    ok: bool
    message: str


def _check_conservation(state: LedgerState, custody_holdings: Optional[int]) -> InvariantResult:
    owed = state.total_liabilities
    if custody_holdings is None:
        return InvariantResult("conservation", True, f"liabilities {owed} (custody not checked)")
    ok = owed <= custody_holdings
    op = "<=" if ok else ">"
    return InvariantResult("conservation", ok, f"liabilities {owed} {op} custody {custody_holdings}")


def _check_non_negative(state: LedgerState) -> InvariantResult:
    negative = sorted(acct for acct, bal in state.balances.items() if bal < 0)
    if negative:
        return InvariantResult("non_negative", False, f"negative balances: {negative}")
    if state.penalty_pool < 0:
        return InvariantResult("non_negative", False, f"negative penalty pool: {state.penalty_pool}")
    return InvariantResult("non_negative", True, "all balances non-negative")


def _check_terminal_flags(state: LedgerState) -> InvariantResult:
    both = sorted(tid for tid, task in state.tasks.items() if task.completed and task.penalized)
    if both:
        return InvariantResult("terminal_flags", False, f"tasks both completed and penalized: {both}")
    return InvariantResult("terminal_flags", True, "terminal flags exclusive")


def _check_index_consistency(state: LedgerState) -> InvariantResult:
    seen: Dict[int, str] = {}
    for account, ids in state.task_index.items():
        for tid in ids:
            if tid in seen:
                return InvariantResult("index_consistency", False, f"task {tid} indexed twice")
            seen[tid] = account
    for tid, task in state.tasks.items():
        if tid >= state.next_task_id or tid < 1:
            return InvariantResult("index_consistency", False, f"task {tid} outside allocated id range")
        if seen.get(tid) != task.owner:
            return InvariantResult("index_consistency", False, f"task {tid} missing from owner index")
    if len(seen) != len(state.tasks):
        return InvariantResult("index_consistency", False, "index references unknown tasks")
    return InvariantResult("index_consistency", True, f"{len(state.tasks)} tasks indexed")


def check_invariants(state: LedgerState, custody_holdings: Optional[int] = None) -> List[InvariantResult]:
    """Check all ledger invariants.

    ``custody_holdings`` is the token balance of the custody account; pass
    None to skip the conservation comparison.
    """
    return [
        _check_conservation(state, custody_holdings),
        _check_non_negative(state),
        _check_terminal_flags(state),
        _check_index_consistency(state),
    ]


def failed_invariants(state: LedgerState, custody_holdings: Optional[int] = None) -> List[InvariantResult]:
    return [result for result in check_invariants(state, custody_holdings) if not result.ok]
