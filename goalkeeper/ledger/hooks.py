"""
GoalKeeper Ledger Hooks - Observer pattern for ledger events.

Every committed state transition produces one immutable event record. The
engine appends events to its own log and then hands them to an optional
hooks object so external systems (indexers, logging, dashboards) can follow
along without affecting the ledger.

Design Principles:
- Hooks are optional (NullHooks by default)
- Hook exceptions are caught and logged, never propagate
- Events are published only after the operation commits
- Hooks receive frozen dataclasses
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Protocol

logger = logging.getLogger(__name__)


# =============================================================================
# Event Dataclasses
# =============================================================================

@dataclass(frozen=True)
class LedgerEvent:
    """Base for all ledger events."""

    name: ClassVar[str] = "LedgerEvent"

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["event"] = self.name
        return payload


@dataclass(frozen=True)
class TaskCreated(LedgerEvent):
    name: ClassVar[str] = "TaskCreated"

    task_id: int
    account: str
    description: str
    deadline: int


@dataclass(frozen=True)
class TaskCompleted(LedgerEvent):
    name: ClassVar[str] = "TaskCompleted"

    task_id: int
    account: str


@dataclass(frozen=True)
class PenaltyApplied(LedgerEvent):
    name: ClassVar[str] = "PenaltyApplied"

    task_id: int
    account: str
    amount: int


@dataclass(frozen=True)
class TokensStaked(LedgerEvent):
    name: ClassVar[str] = "TokensStaked"

    account: str
    amount: int


@dataclass(frozen=True)
class TokensWithdrawn(LedgerEvent):
    name: ClassVar[str] = "TokensWithdrawn"

    account: str
    amount: int


@dataclass(frozen=True)
class PenaltyWithdrawn(LedgerEvent):
    name: ClassVar[str] = "PenaltyWithdrawn"

    owner: str
    amount: int


# =============================================================================
# Hooks Protocol
# =============================================================================

class LedgerHooks(Protocol):
    """
    Protocol for ledger event hooks.

    Called synchronously, in emission order, after the operation that
    produced the events has committed. Implementations should not call back
    into the ledger; such calls are rejected as re-entrant anyway.
    """

    def on_task_created(self, event: TaskCreated) -> None:
        ...

    def on_task_completed(self, event: TaskCompleted) -> None:
        ...

    def on_penalty_applied(self, event: PenaltyApplied) -> None:
        ...

    def on_tokens_staked(self, event: TokensStaked) -> None:
        ...

    def on_tokens_withdrawn(self, event: TokensWithdrawn) -> None:
        ...

    def on_penalty_withdrawn(self, event: PenaltyWithdrawn) -> None:
        ...


_DISPATCH: Dict[type, str] = {
    TaskCreated: "on_task_created",
    TaskCompleted: "on_task_completed",
    PenaltyApplied: "on_penalty_applied",
    TokensStaked: "on_tokens_staked",
    TokensWithdrawn: "on_tokens_withdrawn",
    PenaltyWithdrawn: "on_penalty_withdrawn",
}


def dispatch(hooks: LedgerHooks, event: LedgerEvent) -> None:
    """Deliver one event to the matching hook method, logging any failure."""
    method_name = _DISPATCH.get(type(event))
    if method_name is None:
        logger.warning(f"No hook registered for event type {type(event).__name__}")
        return
    try:
        getattr(hooks, method_name)(event)
    except Exception:
        logger.exception(
            f"Hook {method_name} failed",
            extra={"context": event.to_dict()},
        )


# =============================================================================
# Null Implementation (for testing)
# =============================================================================

class NullHooks:
    """No-op hooks implementation."""

    def on_task_created(self, event: TaskCreated) -> None:
        pass

    def on_task_completed(self, event: TaskCompleted) -> None:
        pass

    def on_penalty_applied(self, event: PenaltyApplied) -> None:
        pass

    def on_tokens_staked(self, event: TokensStaked) -> None:
        pass

    def on_tokens_withdrawn(self, event: TokensWithdrawn) -> None:
        pass

    def on_penalty_withdrawn(self, event: PenaltyWithdrawn) -> None:
        pass


# =============================================================================
# Logging Hooks (for debugging)
# =============================================================================

class LoggingHooks:
    """Hooks that log all events."""

    def __init__(self, log_level: int = logging.INFO):
        self._level = log_level

    def on_task_created(self, event: TaskCreated) -> None:
        logger.log(
            self._level,
            f"[HOOK] Task created: id={event.task_id}, account={event.account}, "
            f"deadline={event.deadline}",
        )

    def on_task_completed(self, event: TaskCompleted) -> None:
        logger.log(self._level, f"[HOOK] Task completed: id={event.task_id}, account={event.account}")

    def on_penalty_applied(self, event: PenaltyApplied) -> None:
        logger.log(
            self._level,
            f"[HOOK] Penalty applied: task={event.task_id}, account={event.account}, amount={event.amount}",
        )

    def on_tokens_staked(self, event: TokensStaked) -> None:
        logger.log(self._level, f"[HOOK] Tokens staked: account={event.account}, amount={event.amount}")

    def on_tokens_withdrawn(self, event: TokensWithdrawn) -> None:
        logger.log(self._level, f"[HOOK] Tokens withdrawn: account={event.account}, amount={event.amount}")

    def on_penalty_withdrawn(self, event: PenaltyWithdrawn) -> None:
        logger.log(self._level, f"[HOOK] Penalty withdrawn: owner={event.owner}, amount={event.amount}")
