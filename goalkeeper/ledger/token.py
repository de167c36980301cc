"""
Custodial token interface and an in-memory reference token.

The ledger never trusts a token's return value on its own: every transfer is
bracketed by ``balance_of`` reads on the custody account (see engine.py).
InMemoryToken models a well-behaved USDT-like asset for tests and demos.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Protocol, Tuple

logger = logging.getLogger(__name__)


class CustodialToken(Protocol):
    """
    Protocol for the external asset the ledger holds in custody.

    Implementations may be non-compliant: they may return False, raise, or
    move a different amount than requested.
    """

    def balance_of(self, account: str) -> int:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def transfer_from(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``recipient`` using the recipient's allowance."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move ``amount`` out of ``sender``'s own holdings."""
        ...


class InMemoryToken:
    """
    Minimal fungible token with balances and allowances.

    transfer_from spends the allowance ``sender`` granted to ``recipient``
    (the ledger pulls into its own custody account). Failed transfers return
    False and leave balances untouched.
    """

    def __init__(self, symbol: str = "USDT", decimals: int = 6):
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._total_supply = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[account] += amount
        self._total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._allowances[(owner, spender)] = amount
        return True

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(sender) < amount:
            logger.debug(f"{self.symbol} transfer rejected: {sender} -> {recipient} ({amount})")
            return False
        self._balances[sender] -= amount
        self._balances[recipient] += amount
        return True

    def transfer_from(self, sender: str, recipient: str, amount: int) -> bool:
        if self.allowance(sender, recipient) < amount:
            logger.debug(f"{self.symbol} transfer_from rejected: allowance {sender} -> {recipient}")
            return False
        if not self.transfer(sender, recipient, amount):
            return False
        self._allowances[(sender, recipient)] -= amount
        return True
