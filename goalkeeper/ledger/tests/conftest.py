"""Shared fixtures for ledger tests."""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from goalkeeper.ledger import GoalKeeper, InMemoryToken, ManualClock

OWNER = "0x" + "f" * 40
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40

START = 1_704_067_200  # 2024-01-01 00:00:00 UTC
HOUR = 3600


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def token() -> InMemoryToken:
    return InMemoryToken()


@pytest.fixture
def ledger(token: InMemoryToken, clock: ManualClock) -> GoalKeeper:
    return GoalKeeper(token, owner=OWNER, clock=clock)


@pytest.fixture
def fund(token: InMemoryToken, ledger: GoalKeeper) -> Callable[..., None]:
    """Mint tokens to an account and approve the ledger to pull them."""

    def _fund(account: str, amount: int, approve: Optional[int] = None) -> None:
        token.mint(account, amount)
        token.approve(account, ledger.custody_account, amount if approve is None else approve)

    return _fund


@pytest.fixture
def staker(fund: Callable[..., None], ledger: GoalKeeper) -> Callable[[str, int], None]:
    """Fund and stake in one step."""

    def _stake(account: str, amount: int) -> None:
        fund(account, amount)
        ledger.stake(account, amount)

    return _stake
