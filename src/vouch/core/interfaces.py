"""Collaborator interfaces consumed by the core.

The token account service and the funds transfer service live outside
the core. These protocols describe what the core needs from them. The
in-memory implementations are for tests and local runs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenAccountService(Protocol):
    """Credits reward tokens to identities."""

    def reward(self, recipient: str, amount: Decimal) -> bool:
        """Credit amount to recipient. Returns False if rejected."""
        ...


@runtime_checkable
class FundsTransferService(Protocol):
    """Moves pool funds to an identity."""

    def transfer(self, recipient: str, amount: Decimal) -> bool:
        """Send amount to recipient. Returns False if rejected."""
        ...


class InMemoryTokenAccounts:
    """Token balances held in a dict.

    Identities in `rejected` have every reward refused, which simulates
    an authorization failure in the token service.
    """

    def __init__(self, rejected: set[str] | None = None) -> None:
        self._balances: dict[str, Decimal] = {}
        self._lock = threading.Lock()
        self.rejected: set[str] = set(rejected or ())

    def reward(self, recipient: str, amount: Decimal) -> bool:
        if recipient in self.rejected:
            logger.debug(f"Token reward to {recipient} refused")
            return False
        with self._lock:
            self._balances[recipient] = self._balances.get(recipient, Decimal("0")) + amount
        return True

    def balance_of(self, identity: str) -> Decimal:
        with self._lock:
            return self._balances.get(identity, Decimal("0"))

    @property
    def total_issued(self) -> Decimal:
        with self._lock:
            return sum(self._balances.values(), Decimal("0"))


@dataclass(frozen=True)
class Transfer:
    """A completed funds transfer."""
    recipient: str
    amount: Decimal


class InMemoryFundsTransfer:
    """Records transfers instead of moving real funds.

    Set `fail_next` to refuse the next transfer, or add identities to
    `rejected` to refuse every transfer to them.
    """

    def __init__(self) -> None:
        self._transfers: list[Transfer] = []
        self._lock = threading.Lock()
        self.rejected: set[str] = set()
        self.fail_next = False

    def transfer(self, recipient: str, amount: Decimal) -> bool:
        with self._lock:
            if self.fail_next or recipient in self.rejected:
                self.fail_next = False
                return False
            self._transfers.append(Transfer(recipient=recipient, amount=amount))
            return True

    @property
    def transfers(self) -> list[Transfer]:
        with self._lock:
            return list(self._transfers)

    def total_sent_to(self, recipient: str) -> Decimal:
        return sum(
            (t.amount for t in self.transfers if t.recipient == recipient),
            Decimal("0"),
        )
