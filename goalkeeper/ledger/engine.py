"""
GoalKeeper Engine - stake-and-penalty accounting.

The engine owns three tightly coupled concerns over one LedgerState:

1. Balance ledger: stake, withdraw, withdraw_penalties
2. Task registry: create_task, complete_task
3. Penalty evaluator: evaluate_task (per task, compounding) and the
   snapshot sweep run by withdraw (batched, non-compounding)

Every state-changing operation runs as a ledger transaction:

- Re-entrant calls (a token calling back in mid-transfer) are rejected
  before they touch state
- Each mutation records an undo action; a failure replays them in reverse,
  so no partial credit or debit survives
- Ledger mutations are committed before the external transfer is invoked
- Events are buffered and published only on commit

Invariants:
- No balance and not the pool is ever negative
- sum(balances) + pool <= custody holdings, with equality unless a token
  misbehaved in the ledger's favour
- completed / penalized are exclusive and terminal
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from ..logging import LoggingOptions, configure_logging
from .clock import Clock, SystemClock
from .config import GoalKeeperConfig, LedgerConfig
from .errors import (
    DeadlineMustBeInFuture,
    DeadlineNotPassed,
    DeadlinePassed,
    InsufficientBalance,
    InsufficientExternalAllowance,
    InsufficientExternalBalance,
    InsufficientPenaltyBalance,
    InvariantViolation,
    LedgerError,
    NoStakedTokens,
    NotTaskOwner,
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
    NullHooks,
    PenaltyApplied,
    PenaltyWithdrawn,
    TaskCompleted,
    TaskCreated,
    TokensStaked,
    TokensWithdrawn,
    dispatch,
)
from .invariants import InvariantResult, check_invariants, failed_invariants
from .models import (
    NULL_ACCOUNT,
    PENALTY_RATE,
    LedgerState,
    Task,
    TaskSummary,
    TaskView,
    compute_penalty,
    validate_account,
    validate_amount,
)
from .storage import load_snapshot, save_snapshot
from .token import CustodialToken
from .units import format_units

logger = logging.getLogger(__name__)

UndoAction = Callable[[], None]


class GoalKeeper:
    """
    Commitment ledger over a custodial token.

    Usage:
        token = InMemoryToken()
        ledger = GoalKeeper(token, owner="treasury")
        token.mint("alice", 100)
        token.approve("alice", ledger.custody_account, 100)
        ledger.stake("alice", 100)
        task_id = ledger.create_task("alice", "ship it", deadline=now + 3600)
    """

    def __init__(
        self,
        token: CustodialToken,
        owner: Optional[str] = None,
        *,
        state: Optional[LedgerState] = None,
        clock: Optional[Clock] = None,
        hooks: Optional[LedgerHooks] = None,
        config: Optional[LedgerConfig] = None,
    ):
        if state is None:
            if owner is None:
                raise ValueError("owner is required when no state is given")
            state = LedgerState(owner=validate_account(owner))
        elif owner is not None and owner != state.owner:
            raise ValueError(f"owner {owner!r} does not match state owner {state.owner!r}")

        self._config = config or LedgerConfig()
        if state.owner == self._config.custody_account:
            raise ValueError("owner must differ from the custody account")

        self._token = token
        self._state = state
        self._clock: Clock = clock or SystemClock()
        self._hooks: LedgerHooks = hooks or NullHooks()

        self._events: List[LedgerEvent] = []
        self._active: Optional[str] = None
        self._undo: List[UndoAction] = []
        self._pending: List[LedgerEvent] = []
        self._snapshot_path: Optional[Path] = None

    @classmethod
    def from_snapshot(
        cls,
        path: Union[str, Path],
        token: CustodialToken,
        **kwargs,
    ) -> "GoalKeeper":
        """Resume a ledger from a snapshot written by save_snapshot."""
        return cls(token, state=load_snapshot(path), **kwargs)

    @classmethod
    def from_config(
        cls,
        config: GoalKeeperConfig,
        token: CustodialToken,
        owner: Optional[str] = None,
        *,
        clock: Optional[Clock] = None,
        hooks: Optional[LedgerHooks] = None,
    ) -> "GoalKeeper":
        """
        Build a ledger from a GoalKeeperConfig.

        Configures logging from ``config.logging``, resumes from
        ``config.storage.snapshot_path`` when that file exists and otherwise
        starts an empty ledger for ``owner``. The snapshot path becomes the
        default target of save_snapshot().
        """
        configure_logging(LoggingOptions.from_config(config.logging))

        snapshot_path = Path(config.storage.snapshot_path)
        state = load_snapshot(snapshot_path) if snapshot_path.exists() else None
        ledger = cls(token, owner, state=state, clock=clock, hooks=hooks, config=config.ledger)
        ledger._snapshot_path = snapshot_path

        if state is not None:
            message = f"Ledger resumed from {snapshot_path}"
        else:
            message = f"Ledger created for {ledger.get_owner()}"
        logger.info(
            message,
            extra={"context": {"snapshot_path": str(snapshot_path), "tasks": len(ledger.state.tasks)}},
        )
        return ledger

    def save_snapshot(self, path: Optional[Union[str, Path]] = None) -> Path:
        if self._active is not None:
            raise ReentrantCall("save_snapshot", self._active)
        target = path if path is not None else self._snapshot_path
        if target is None:
            raise ValueError("no snapshot path given and none configured")
        return save_snapshot(self._state, target)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def custody_account(self) -> str:
        return self._config.custody_account

    @property
    def events(self) -> Tuple[LedgerEvent, ...]:
        """Every event committed by this engine instance, in order."""
        return tuple(self._events)

    # -------------------------------------------------------------------------
    # Balance ledger
    # -------------------------------------------------------------------------

    def stake(self, account: str, amount: int) -> None:
        """Pull ``amount`` from ``account`` into custody and credit its stake."""
        with self._transaction("stake"):
            validate_account(account)
            validate_amount(amount)

            available = self._token.balance_of(account)
            if available < amount:
                raise InsufficientExternalBalance(available, amount)
            allowance = self._token.allowance(account, self.custody_account)
            if allowance < amount:
                raise InsufficientExternalAllowance(allowance, amount)

            self._credit(account, amount)
            self._pull(account, amount)
            self._emit(TokensStaked(account=account, amount=amount))

        logger.info(
            f"Staked {self._units(amount)} for {account}",
            extra={"context": {"account": account, "amount": amount, "balance": self._state.balance_of(account)}},
        )

    def withdraw(self, account: str, amount: int) -> None:
        """
        Sweep lapsed tasks, then pay ``amount`` of the remaining stake out.

        A zero amount is accepted and only runs the sweep.
        """
        with self._transaction("withdraw"):
            validate_account(account)
            validate_amount(amount, allow_zero=True)

            swept = self._sweep(account, self._clock.now())

            available = self._state.balance_of(account)
            if available < amount:
                raise InsufficientBalance(available, amount)

            if amount:
                self._debit(account, amount)
                self._push(account, amount)
            self._emit(TokensWithdrawn(account=account, amount=amount))

        logger.info(
            f"Withdrew {self._units(amount)} for {account}",
            extra={"context": {"account": account, "amount": amount, "swept": swept}},
        )

    def withdraw_penalties(self, caller: str, amount: int) -> None:
        """Owner-only: pay ``amount`` out of the penalty pool to the owner."""
        with self._transaction("withdraw_penalties"):
            validate_account(caller)
            validate_amount(amount, allow_zero=True)

            if caller != self._state.owner:
                raise Unauthorized(caller)

            available = self._state.penalty_pool
            if available < amount:
                raise InsufficientPenaltyBalance(available, amount)

            if amount:
                self._debit_pool(amount)
                self._push(self._state.owner, amount)
            self._emit(PenaltyWithdrawn(owner=self._state.owner, amount=amount))

        logger.info(
            f"Owner withdrew {self._units(amount)} from penalty pool",
            extra={"context": {"amount": amount, "pool": self._state.penalty_pool}},
        )

    # -------------------------------------------------------------------------
    # Task registry
    # -------------------------------------------------------------------------

    def create_task(self, owner: str, description: str, deadline: int) -> int:
        """Register a task against ``owner``'s stake and return its id."""
        if not isinstance(description, str):
            raise TypeError(f"description must be str, got {type(description).__name__}")
        if not isinstance(deadline, int) or isinstance(deadline, bool):
            raise TypeError(f"deadline must be int seconds, got {type(deadline).__name__}")

        with self._transaction("create_task"):
            validate_account(owner)
            now = self._clock.now()
            if deadline <= now:
                raise DeadlineMustBeInFuture(deadline, now)
            if self._state.balance_of(owner) == 0:
                raise NoStakedTokens(owner)

            task = Task(
                task_id=self._state.next_task_id,
                owner=owner,
                description=description,
                deadline=deadline,
            )
            self._insert_task(task)
            self._emit(TaskCreated(
                task_id=task.task_id,
                account=owner,
                description=description,
                deadline=deadline,
            ))

        logger.info(
            f"Task {task.task_id} created for {owner}",
            extra={"context": {"task_id": task.task_id, "deadline": deadline}},
        )
        return task.task_id

    def complete_task(self, owner: str, task_id: int) -> None:
        """Mark an open task completed; ownership is checked first."""
        with self._transaction("complete_task"):
            validate_account(owner)
            task = self._state.get_task(task_id)
            recorded_owner = task.owner if task is not None else NULL_ACCOUNT
            if recorded_owner != owner:
                raise NotTaskOwner(task_id, owner)

            now = self._clock.now()
            if now > task.deadline:
                raise DeadlinePassed(task_id, task.deadline, now)
            if task.completed:
                raise TaskAlreadyCompleted(task_id)
            if task.penalized:
                raise TaskAlreadyPenalized(task_id)

            self._set_flag(task, "completed")
            self._emit(TaskCompleted(task_id=task_id, account=owner))

        logger.info(f"Task {task_id} completed by {owner}", extra={"context": {"task_id": task_id}})

    # -------------------------------------------------------------------------
    # Penalty evaluator
    # -------------------------------------------------------------------------

    def evaluate_task(self, task_id: int) -> int:
        """
        Penalize one lapsed task and return the amount charged.

        The charge is PENALTY_RATE percent of the owner's *current* balance,
        so evaluating several lapsed tasks one by one compounds.
        """
        with self._transaction("evaluate_task"):
            task = self._state.get_task(task_id)
            if task is None:
                raise TaskNotFound(task_id)

            now = self._clock.now()
            if now <= task.deadline:
                raise DeadlineNotPassed(task_id, task.deadline, now)
            if task.completed:
                raise TaskAlreadyCompleted(task_id)
            if task.penalized:
                raise TaskAlreadyPenalized(task_id)

            balance = self._state.balance_of(task.owner)
            charged = min(compute_penalty(balance), balance)
            if charged:
                self._debit(task.owner, charged)
                self._credit_pool(charged)
            self._set_flag(task, "penalized")
            self._emit(PenaltyApplied(task_id=task_id, account=task.owner, amount=charged))

        logger.info(
            f"Task {task_id} penalized: {charged} moved to pool",
            extra={"context": {"task_id": task_id, "account": task.owner, "amount": charged}},
        )
        return charged

    def _sweep(self, account: str, now: int) -> int:
        """
        Penalize every lapsed open task of ``account`` in one pass.

        Each task is charged against the balance observed when the sweep
        starts; the summed charge is clamped to the balance and applied as
        a single debit. Returns the total moved to the pool.
        """
        snapshot = self._state.balance_of(account)
        per_task = compute_penalty(snapshot)

        lapsed: List[Task] = []
        for task_id in self._state.task_ids_of(account):
            task = self._state.tasks[task_id]
            if task.is_open and now > task.deadline:
                self._set_flag(task, "penalized")
                lapsed.append(task)

        if not lapsed:
            return 0

        total = min(per_task * len(lapsed), self._state.balance_of(account))
        if total:
            self._debit(account, total)
            self._credit_pool(total)

        remaining = total
        for task in lapsed:
            charged = min(per_task, remaining)
            remaining -= charged
            self._emit(PenaltyApplied(task_id=task.task_id, account=account, amount=charged))

        logger.debug(
            f"Swept {len(lapsed)} lapsed tasks for {account}",
            extra={"context": {"account": account, "tasks": [t.task_id for t in lapsed], "total": total}},
        )
        return total

    # -------------------------------------------------------------------------
    # Queries (never mutate)
    # -------------------------------------------------------------------------

    def get_user_balance(self, caller: str) -> int:
        return self._state.balance_of(caller)

    def get_staked_balance(self, account: str) -> int:
        return self._state.balance_of(account)

    def get_task(self, task_id: int) -> TaskView:
        task = self._state.get_task(task_id)
        return task.view() if task is not None else TaskView.empty()

    def get_task_ids(self, account: str) -> Tuple[int, ...]:
        return self._state.task_ids_of(account)

    def get_penalty_balance(self) -> int:
        return self._state.penalty_pool

    def get_owner(self) -> str:
        return self._state.owner

    @staticmethod
    def get_penalty_rate() -> int:
        return PENALTY_RATE

    def get_task_summary(self, account: str) -> TaskSummary:
        now = self._clock.now()
        active = completed = penalized = lapsed = 0
        for task_id in self._state.task_ids_of(account):
            task = self._state.tasks[task_id]
            if task.completed:
                completed += 1
            elif task.penalized:
                penalized += 1
            else:
                active += 1
                if now > task.deadline:
                    lapsed += 1
        return TaskSummary(active=active, completed=completed, penalized=penalized, lapsed=lapsed)

    def custody_holdings(self) -> int:
        return self._token.balance_of(self.custody_account)

    def check_invariants(self) -> List[InvariantResult]:
        return check_invariants(self._state, self.custody_holdings())

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            logger.warning(f"Rejected re-entrant {operation} during {self._active}")
            raise ReentrantCall(operation, self._active)

        self._active = operation
        self._undo = []
        self._pending = []
        try:
            yield
            if self._config.check_invariants:
                failed = failed_invariants(self._state, self.custody_holdings())
                if failed:
                    raise InvariantViolation(failed)
        except BaseException as exc:
            undone = self._rollback()
            if isinstance(exc, LedgerError):
                logger.warning(
                    f"{operation} rejected: {exc.code}",
                    extra={"context": {"operation": operation, "rolled_back": undone, **exc.details}},
                )
            else:
                logger.error(f"{operation} aborted by {type(exc).__name__}; rolled back {undone} mutations")
            raise
        else:
            committed = self._pending
            self._events.extend(committed)
            for event in committed:
                dispatch(self._hooks, event)
        finally:
            self._active = None
            self._undo = []
            self._pending = []

    def _rollback(self) -> int:
        count = len(self._undo)
        while self._undo:
            self._undo.pop()()
        self._pending = []
        return count

    def _emit(self, event: LedgerEvent) -> None:
        self._pending.append(event)

    def _units(self, amount: int) -> str:
        return format_units(amount, self._config.token_decimals)

    # -- journaled mutations --------------------------------------------------

    def _credit(self, account: str, amount: int) -> None:
        balances = self._state.balances
        previous = balances.get(account)
        balances[account] = (previous or 0) + amount
        self._undo.append(lambda: self._restore_balance(account, previous))

    def _debit(self, account: str, amount: int) -> None:
        balances = self._state.balances
        previous = balances.get(account, 0)
        if amount > previous:
            raise InsufficientBalance(previous, amount)
        balances[account] = previous - amount
        self._undo.append(lambda: self._restore_balance(account, previous))

    def _restore_balance(self, account: str, previous: Optional[int]) -> None:
        if previous is None:
            self._state.balances.pop(account, None)
        else:
            self._state.balances[account] = previous

    def _credit_pool(self, amount: int) -> None:
        previous = self._state.penalty_pool
        self._state.penalty_pool = previous + amount
        self._undo.append(lambda: setattr(self._state, "penalty_pool", previous))

    def _debit_pool(self, amount: int) -> None:
        previous = self._state.penalty_pool
        if amount > previous:
            raise InsufficientPenaltyBalance(previous, amount)
        self._state.penalty_pool = previous - amount
        self._undo.append(lambda: setattr(self._state, "penalty_pool", previous))

    def _set_flag(self, task: Task, flag: str) -> None:
        setattr(task, flag, True)
        self._undo.append(lambda: setattr(task, flag, False))

    def _insert_task(self, task: Task) -> None:
        state = self._state
        state.tasks[task.task_id] = task
        ids = state.task_index.setdefault(task.owner, [])
        created_index = len(ids) == 0
        ids.append(task.task_id)
        state.next_task_id = task.task_id + 1

        def undo() -> None:
            state.tasks.pop(task.task_id, None)
            ids.pop()
            if created_index:
                state.task_index.pop(task.owner, None)
            state.next_task_id = task.task_id

        self._undo.append(undo)

    # -- verified custodial transfers ------------------------------------------

    def _pull(self, account: str, amount: int) -> None:
        self._verified_transfer(
            amount,
            inbound=True,
            move=lambda: self._token.transfer_from(account, self.custody_account, amount),
        )

    def _push(self, recipient: str, amount: int) -> None:
        self._verified_transfer(
            amount,
            inbound=False,
            move=lambda: self._token.transfer(self.custody_account, recipient, amount),
        )

    def _verified_transfer(self, amount: int, *, inbound: bool, move: Callable[[], bool]) -> None:
        """Run ``move`` and require the custody balance to shift by exactly ``amount``."""
        custody = self.custody_account
        before = self._token.balance_of(custody)
        try:
            ok = move()
        except Exception as exc:
            raise TransferIntegrityFailure(amount, None, f"token raised {type(exc).__name__}") from exc
        after = self._token.balance_of(custody)

        delta = after - before if inbound else before - after
        if not ok:
            raise TransferIntegrityFailure(amount, delta, "token reported failure")
        if delta != amount:
            raise TransferIntegrityFailure(amount, delta)
