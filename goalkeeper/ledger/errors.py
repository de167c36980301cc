"""
GoalKeeper ledger errors.

Every rejected operation raises a subclass of LedgerError. Errors are grouped
by who has to act on them:

- PreconditionError: the caller supplied state that the ledger refuses
  (wrong owner, wrong task state, deadline direction, bad amounts)
- ExternalTransferError: the custodial token could not move value as asked
- AuthorizationError: a non-owner attempted a privileged action

Each error carries the structured data needed to build a precise message
(available vs. required, the task id, the conflicting timestamps) and a
stable ``code`` for machine consumers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger rejections."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class PreconditionError(LedgerError):
    code = "PRECONDITION_FAILED"


class ExternalTransferError(LedgerError):
    code = "EXTERNAL_TRANSFER_FAILED"


class AuthorizationError(LedgerError):
    code = "UNAUTHORIZED"


class InvariantViolation(LedgerError):
    """A committed operation would have broken a ledger invariant."""

    code = "INVARIANT_VIOLATION"

    def __init__(self, failed: Any):
        names = ", ".join(result.name for result in failed)
        super().__init__(f"Ledger invariant violated: {names}", failed=[r.name for r in failed])
        self.failed = list(failed)


# =============================================================================
# Precondition failures
# =============================================================================

class InvalidAmount(PreconditionError):
    code = "INVALID_AMOUNT"

    def __init__(self, amount: Any, reason: str = "amount must be a positive integer"):
        super().__init__(f"Invalid amount {amount!r}: {reason}", amount=amount)
        self.amount = amount


class InvalidAccount(PreconditionError):
    code = "INVALID_ACCOUNT"

    def __init__(self, account: Any):
        super().__init__(f"Invalid account identifier: {account!r}", account=account)
        self.account = account


class NoStakedTokens(PreconditionError):
    code = "NO_STAKED_TOKENS"

    def __init__(self, user: str):
        super().__init__(f"Account {user} has no staked tokens", user=user)
        self.user = user


class DeadlineMustBeInFuture(PreconditionError):
    code = "DEADLINE_MUST_BE_IN_FUTURE"

    def __init__(self, deadline: int, now: int):
        super().__init__(
            f"Deadline {deadline} must be later than the current time {now}",
            deadline=deadline,
            now=now,
        )
        self.deadline = deadline
        self.now = now


class DeadlinePassed(PreconditionError):
    code = "DEADLINE_PASSED"

    def __init__(self, task_id: int, deadline: int, now: int):
        super().__init__(
            f"Task {task_id} deadline {deadline} has passed (now {now})",
            task_id=task_id,
            deadline=deadline,
            now=now,
        )
        self.task_id = task_id
        self.deadline = deadline
        self.now = now


class DeadlineNotPassed(PreconditionError):
    code = "DEADLINE_NOT_PASSED"

    def __init__(self, task_id: int, deadline: int, now: int):
        super().__init__(
            f"Task {task_id} deadline {deadline} has not passed yet (now {now})",
            task_id=task_id,
            deadline=deadline,
            now=now,
        )
        self.task_id = task_id
        self.deadline = deadline
        self.now = now


class NotTaskOwner(PreconditionError):
    code = "NOT_TASK_OWNER"

    def __init__(self, task_id: int, caller: str):
        super().__init__(f"Account {caller} does not own task {task_id}", task_id=task_id, caller=caller)
        self.task_id = task_id
        self.caller = caller


class TaskNotFound(PreconditionError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: Any):
        super().__init__(f"Task {task_id!r} does not exist", task_id=task_id)
        self.task_id = task_id


class TaskAlreadyCompleted(PreconditionError):
    code = "TASK_ALREADY_COMPLETED"

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} is already completed", task_id=task_id)
        self.task_id = task_id


class TaskAlreadyPenalized(PreconditionError):
    code = "TASK_ALREADY_PENALIZED"

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} is already penalized", task_id=task_id)
        self.task_id = task_id


class InsufficientBalance(PreconditionError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Insufficient staked balance: available {available}, required {required}",
            available=available,
            required=required,
        )
        self.available = available
        self.required = required


class InsufficientPenaltyBalance(PreconditionError):
    code = "INSUFFICIENT_PENALTY_BALANCE"

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Insufficient penalty pool: available {available}, required {required}",
            available=available,
            required=required,
        )
        self.available = available
        self.required = required


class ReentrantCall(PreconditionError):
    code = "REENTRANT_CALL"

    def __init__(self, operation: str, active: Optional[str]):
        super().__init__(
            f"Re-entrant call to {operation} while {active} is in progress",
            operation=operation,
            active=active,
        )
        self.operation = operation
        self.active = active


# =============================================================================
# External transfer failures
# =============================================================================

class InsufficientExternalBalance(ExternalTransferError):
    code = "INSUFFICIENT_EXTERNAL_BALANCE"

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Token balance too low: available {available}, required {required}",
            available=available,
            required=required,
        )
        self.available = available
        self.required = required


class InsufficientExternalAllowance(ExternalTransferError):
    code = "INSUFFICIENT_EXTERNAL_ALLOWANCE"

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Token allowance too low: available {available}, required {required}",
            available=available,
            required=required,
        )
        self.available = available
        self.required = required


class TransferIntegrityFailure(ExternalTransferError):
    """The token reported failure, raised, or moved a different amount."""

    code = "TRANSFER_INTEGRITY_FAILURE"

    def __init__(self, expected: int, observed: Optional[int], reason: str = "custody balance delta mismatch"):
        super().__init__(
            f"Token transfer failed ({reason}): expected {expected}, observed {observed}",
            expected=expected,
            observed=observed,
            reason=reason,
        )
        self.expected = expected
        self.observed = observed
        self.reason = reason


# =============================================================================
# Authorization failures
# =============================================================================

class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"

    def __init__(self, caller: str):
        super().__init__(f"Account {caller} is not the ledger owner", caller=caller)
        self.caller = caller
