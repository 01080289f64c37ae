"""Shared fee pool - deposits, sponsored disbursements, and platform fee.

Anyone may deposit. Only the operator (or the ledger acting on a
user's behalf) may sponsor a disbursement, and only the operator may
withdraw the platform fee.

Conservation invariants:
    total_spent <= total_deposited * (1 - platform_fee_rate)
    current_balance >= 0

Payouts go through the external FundsTransferService outside the pool
lock. The amount is reserved under the lock first, so concurrent
payouts can never jointly overdraw the pool, and the counters are only
committed once the transfer succeeds. A rejected transfer releases the
reservation and raises TransferFailedError.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .events import DomainEvent, EventKind, EventSink
from .exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    NothingToWithdrawError,
    TransferFailedError,
    UnauthorizedError,
)
from .interfaces import FundsTransferService
from .ledger import utc_now
from .models import FeePoolState, PoolStats

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def to_amount(value: Decimal | int | str) -> Decimal:
    """Coerce value to a positive Decimal.

    Raises:
        InvalidAmountError: If value is not numeric, not finite, or not > 0.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(value) from e
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidAmountError(amount)
    return amount


class FeePool:
    """Fee pool accounting.

    Usage:
        pool = FeePool(operator_id="operator", transfer_service=transfers)
        pool.deposit(Decimal("1000"), depositor="alice")
        pool.sponsor("operator", "bob", Decimal("400"))
        amount, event = pool.withdraw_platform_fee("operator")

    If on_commit is given it receives every event under the pool lock.
    """

    def __init__(
        self,
        operator_id: str,
        transfer_service: FundsTransferService,
        platform_fee_rate: Decimal = Decimal("0.02"),
        ledger_id: str | None = None,
        clock: Callable[[], datetime] = utc_now,
        state: FeePoolState | None = None,
        on_commit: EventSink | None = None,
    ) -> None:
        if state is None:
            state = FeePoolState(platform_fee_rate=platform_fee_rate)
        if not ZERO <= state.platform_fee_rate < Decimal("1"):
            raise ValueError(f"platform_fee_rate must be in [0, 1), got {state.platform_fee_rate}")

        self._operator_id = operator_id
        self._ledger_id = ledger_id
        self._transfer_service = transfer_service
        self._clock = clock
        self._on_commit = on_commit
        self._state = state
        self._pending_sponsorship = ZERO
        self._pending_fees = ZERO
        self._lock = threading.Lock()

    @property
    def operator_id(self) -> str:
        return self._operator_id

    @property
    def platform_fee_rate(self) -> Decimal:
        return self._state.platform_fee_rate

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deposit(self, amount: Decimal | int | str, depositor: str = "anonymous") -> DomainEvent:
        """Add funds to the pool. Open to any caller.

        Raises:
            InvalidAmountError: If amount is not positive.
        """
        amount = to_amount(amount)
        with self._lock:
            self._state.total_deposited += amount
            total = self._state.total_deposited
            event = DomainEvent(
                kind=EventKind.POOL_DEPOSIT,
                actor=depositor,
                timestamp=self._clock(),
                payload={"amount": str(amount), "total_deposited": str(total)},
            )
            self._emit(event)

        logger.info(f"Pool deposit of {amount} from {depositor} (total deposited {total})")
        return event

    def sponsor(
        self,
        caller: str,
        recipient: str,
        amount: Decimal | int | str,
    ) -> DomainEvent:
        """Pay amount from the pool to recipient.

        Raises:
            UnauthorizedError: If caller is neither operator nor ledger.
            InvalidAmountError: If amount is not positive.
            InsufficientBalanceError: If amount exceeds the balance or the
                share of deposits allocated for sponsorship.
            TransferFailedError: If the transfer service rejects the payout.
        """
        if caller not in self._sponsors():
            raise UnauthorizedError(caller, "sponsor")
        amount = to_amount(amount)

        with self._lock:
            payable = min(self._free_balance(), self._free_allowance())
            if amount > payable:
                raise InsufficientBalanceError(amount, max(payable, ZERO))
            self._pending_sponsorship += amount

        succeeded, reason = self._send(recipient, amount)

        with self._lock:
            self._pending_sponsorship -= amount
            if succeeded:
                self._state.total_spent += amount
                event = DomainEvent(
                    kind=EventKind.POOL_SPONSORED,
                    actor=caller,
                    timestamp=self._clock(),
                    payload={
                        "recipient": recipient,
                        "amount": str(amount),
                        "total_spent": str(self._state.total_spent),
                    },
                )
                self._emit(event)

        if not succeeded:
            logger.warning(f"Sponsorship of {amount} to {recipient} failed: {reason}")
            raise TransferFailedError(recipient, amount, reason)

        logger.info(f"Pool sponsored {amount} to {recipient} (caller {caller})")
        return event

    def withdraw_platform_fee(self, caller: str) -> tuple[Decimal, DomainEvent]:
        """Pay the platform fee to the operator.

        The withdrawable amount is recomputed from lifetime deposits on
        every call, min(total_deposited * rate, balance), with no record
        of fees already taken.

        Raises:
            UnauthorizedError: If caller is not the operator.
            NothingToWithdrawError: If the computed amount is zero.
            TransferFailedError: If the transfer service rejects the payout.
        """
        if caller != self._operator_id:
            raise UnauthorizedError(caller, "withdraw platform fee")

        with self._lock:
            available = min(self._state.platform_fee_share, self._free_balance())
            if available <= ZERO:
                raise NothingToWithdrawError()
            self._pending_fees += available

        succeeded, reason = self._send(self._operator_id, available)

        with self._lock:
            self._pending_fees -= available
            if succeeded:
                self._state.total_fees_withdrawn += available
                event = DomainEvent(
                    kind=EventKind.PLATFORM_FEE_WITHDRAWN,
                    actor=caller,
                    timestamp=self._clock(),
                    payload={"amount": str(available)},
                )
                self._emit(event)

        if not succeeded:
            logger.warning(f"Platform fee withdrawal of {available} failed: {reason}")
            raise TransferFailedError(self._operator_id, available, reason)

        logger.info(f"Platform fee of {available} withdrawn to {self._operator_id}")
        return available, event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                balance=self._state.current_balance,
                total_deposited=self._state.total_deposited,
                total_spent=self._state.total_spent,
                available_for_sponsorship=self._state.available_for_sponsorship,
                total_fees_withdrawn=self._state.total_fees_withdrawn,
            )

    def get_state(self) -> FeePoolState:
        """Copy of the committed state."""
        with self._lock:
            return FeePoolState.from_dict(self._state.to_dict())

    def is_authorized_sponsor(self, identity: str) -> bool:
        return identity in self._sponsors()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _sponsors(self) -> set[str]:
        sponsors = {self._operator_id}
        if self._ledger_id:
            sponsors.add(self._ledger_id)
        return sponsors

    def _free_balance(self) -> Decimal:
        # Caller holds the lock
        return self._state.current_balance - self._pending_sponsorship - self._pending_fees

    def _free_allowance(self) -> Decimal:
        # Caller holds the lock
        return self._state.available_for_sponsorship - self._pending_sponsorship

    def _emit(self, event: DomainEvent) -> None:
        # Caller holds the lock
        if self._on_commit is not None:
            self._on_commit(event)

    def _send(self, recipient: str, amount: Decimal) -> tuple[bool, str]:
        try:
            if self._transfer_service.transfer(recipient, amount):
                return True, ""
            return False, "transfer rejected"
        except Exception as e:  # Intentionally broad: external collaborator boundary
            return False, str(e)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return self._state.to_dict()

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        operator_id: str,
        transfer_service: FundsTransferService,
        ledger_id: str | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_commit: EventSink | None = None,
    ) -> FeePool:
        """Reconstruct a pool from persisted counters.

        Raises:
            ValueError: If the counters violate the conservation invariants.
        """
        state = FeePoolState.from_dict(data)
        if state.available_for_sponsorship < ZERO:
            raise ValueError("Persisted pool spent more than its sponsorship share")
        if state.current_balance < ZERO:
            raise ValueError("Persisted pool has a negative balance")
        return cls(
            operator_id=operator_id,
            transfer_service=transfer_service,
            ledger_id=ledger_id,
            clock=clock,
            state=state,
            on_commit=on_commit,
        )
