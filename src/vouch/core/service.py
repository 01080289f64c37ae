"""Vouch service - the operation surface over ledger, rewards and pool.

Orchestrates:
- Ledger (post creation, verification dedup and counting)
- RewardPolicy (reward instructions for ledger events)
- FeePool (deposits, sponsored disbursements, platform fee)
- EventLog (append-only audit of every committed mutation)
- StateStore (optional JSON snapshot after every committed mutation)

Ledger and pool errors abort the operation before anything is
committed. Reward issuance happens after the ledger commit and its
failures are returned in the receipt, never raised.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from .config import get_config
from .events import DomainEvent, EventKind, EventLog
from .exceptions import ConfigException, ConflictError, VouchException
from .fee_pool import FeePool
from .interfaces import FundsTransferService, TokenAccountService
from .ledger import Ledger, utc_now
from .logging import correlation_context, operation_logger
from .models import PoolStats, Post, VerificationRecord
from .persistence import StateStore
from .rewards import RewardConstants, RewardOutcome, RewardPolicy, issue_rewards

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """Credential of the identity invoking a privileged operation."""
    identity: str


@dataclass(frozen=True)
class PostReceipt:
    """Result of create_post."""
    post_id: int
    events: list[DomainEvent] = field(default_factory=list)
    rewards: list[RewardOutcome] = field(default_factory=list)

    @property
    def failed_rewards(self) -> list[RewardOutcome]:
        return [r for r in self.rewards if not r.success]


@dataclass(frozen=True)
class VerificationReceipt:
    """Result of verify_post."""
    post_id: int
    verifier: str
    verification_count: int
    record: VerificationRecord
    events: list[DomainEvent] = field(default_factory=list)
    rewards: list[RewardOutcome] = field(default_factory=list)

    @property
    def failed_rewards(self) -> list[RewardOutcome]:
        return [r for r in self.rewards if not r.success]


@dataclass(frozen=True)
class DisbursementReceipt:
    """Result of a pool payout."""
    recipient: str
    amount: Decimal
    event: DomainEvent


class VouchService:
    """Unified facade over the ledger, reward policy and fee pool.

    Usage:
        service = VouchService(token_service=tokens, transfer_service=transfers)

        receipt = service.create_post("alice", "enc1", "ipfs1", "gate")
        service.verify_post(receipt.post_id, "bob")

        service.deposit_to_pool(Decimal("1000"))
        service.sponsor_gas(CallerContext("operator"), "carol", Decimal("400"))
        service.withdraw_platform_fee(CallerContext("operator"))

    Unset options fall back to CoreSettings. When a state store is given
    and its snapshot exists, state is loaded from it on construction.
    A snapshot that cannot be restored raises ConfigException.
    """

    def __init__(
        self,
        token_service: TokenAccountService,
        transfer_service: FundsTransferService,
        operator_id: str | None = None,
        ledger_id: str | None = None,
        platform_fee_rate: Decimal | None = None,
        reward_constants: RewardConstants | None = None,
        state_store: StateStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        config = get_config()
        self._operator_id = config.operator_id if operator_id is None else operator_id
        self._ledger_id = config.ledger_id if ledger_id is None else ledger_id
        if platform_fee_rate is None:
            platform_fee_rate = config.platform_fee_rate
        if state_store is None and config.state_path:
            state_store = StateStore(config.state_path)

        self._token_service = token_service
        self._policy = RewardPolicy(reward_constants or config.reward_constants)
        self._state_store = state_store
        self._event_log = EventLog()
        self._reward_history: list[RewardOutcome] = []
        self._history_lock = threading.Lock()
        self._persist_lock = threading.Lock()

        # Set if a snapshot write fails after a commit. In-memory state is
        # still correct but the snapshot is stale.
        self._persistence_degraded = False

        snapshot = state_store.load() if state_store is not None else None
        if snapshot is not None:
            try:
                self._ledger = Ledger.from_dict(
                    snapshot["ledger"], clock=clock, on_commit=self._event_log.append
                )
                self._pool = FeePool.from_dict(
                    snapshot["fee_pool"],
                    operator_id=self._operator_id,
                    transfer_service=transfer_service,
                    ledger_id=self._ledger_id,
                    clock=clock,
                    on_commit=self._event_log.append,
                )
            except (KeyError, TypeError, ValueError, ArithmeticError, ConflictError) as e:
                raise ConfigException(
                    f"State snapshot {state_store.path} is inconsistent: {e}"
                ) from e
            if self._pool.platform_fee_rate != platform_fee_rate:
                logger.warning(
                    f"Snapshot fee rate {self._pool.platform_fee_rate} overrides "
                    f"configured rate {platform_fee_rate}"
                )
        else:
            self._ledger = Ledger(clock=clock, on_commit=self._event_log.append)
            self._pool = FeePool(
                operator_id=self._operator_id,
                transfer_service=transfer_service,
                platform_fee_rate=platform_fee_rate,
                ledger_id=self._ledger_id,
                clock=clock,
                on_commit=self._event_log.append,
            )

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------

    def create_post(
        self,
        author: str,
        encrypted_content: str,
        media_reference: str,
        community: str,
    ) -> PostReceipt:
        """Store a post and reward its author."""
        with self._operation(
            "create_post",
            author=author,
            encrypted_content=encrypted_content,
            media_reference=media_reference,
            community=community,
        ):
            post_id, event = self._ledger.create_post(
                author, encrypted_content, media_reference, community
            )
            self._persist()
            rewards = self._issue_rewards(event)
            return PostReceipt(post_id=post_id, events=[event], rewards=rewards)

    def verify_post(self, post_id: int, identity: str) -> VerificationReceipt:
        """Record identity's verification of post_id and reward both parties.

        Raises:
            NotFoundError: If post_id was never created.
            AlreadyVerifiedError: If identity already verified post_id.
        """
        with self._operation("verify_post", post_id=post_id, identity=identity):
            record, event = self._ledger.record_verification(post_id, identity)
            self._persist()
            rewards = self._issue_rewards(event)
            return VerificationReceipt(
                post_id=post_id,
                verifier=identity,
                verification_count=event.payload["verification_count"],
                record=record,
                events=[event],
                rewards=rewards,
            )

    def get_post(self, post_id: int) -> Post:
        """Raises NotFoundError for an unknown post_id."""
        return self._ledger.get_post(post_id)

    def get_verification_count(self, post_id: int) -> int:
        return self._ledger.get_verification_count(post_id)

    def list_verifiers(self, post_id: int) -> list[VerificationRecord]:
        return self._ledger.list_verifiers(post_id)

    def has_verified(self, post_id: int, identity: str) -> bool:
        return self._ledger.has_verified(post_id, identity)

    def list_posts(
        self,
        community: str | None = None,
        author: str | None = None,
    ) -> list[Post]:
        return self._ledger.list_posts(community=community, author=author)

    def post_count(self) -> int:
        return self._ledger.post_count

    # ------------------------------------------------------------------
    # Fee pool operations
    # ------------------------------------------------------------------

    def deposit_to_pool(
        self,
        amount: Decimal | int | str,
        caller: CallerContext | None = None,
    ) -> DomainEvent:
        """Deposit into the fee pool. Open to any caller.

        Raises:
            InvalidAmountError: If amount is not positive.
        """
        depositor = caller.identity if caller else "anonymous"
        with self._operation("deposit_to_pool", amount=amount, caller=depositor):
            event = self._pool.deposit(amount, depositor=depositor)
            self._persist()
            return event

    def sponsor_gas(
        self,
        caller: CallerContext,
        recipient: str,
        amount: Decimal | int | str,
    ) -> DisbursementReceipt:
        """Pay a sponsored disbursement from the pool.

        Raises:
            UnauthorizedError: If caller is not the operator or the ledger.
            InvalidAmountError: If amount is not positive.
            InsufficientBalanceError: If the pool cannot cover amount.
            TransferFailedError: If the transfer service rejects the payout.
        """
        with self._operation(
            "sponsor_gas", caller=caller.identity, recipient=recipient, amount=amount
        ):
            event = self._pool.sponsor(caller.identity, recipient, amount)
            self._persist()
            return DisbursementReceipt(
                recipient=recipient,
                amount=Decimal(event.payload["amount"]),
                event=event,
            )

    def sponsor_author(self, post_id: int, amount: Decimal | int | str) -> DisbursementReceipt:
        """Sponsor a post's author, with the ledger as the acting identity.

        Raises:
            NotFoundError: If post_id was never created.
            plus the errors of sponsor_gas.
        """
        author = self._ledger.get_post(post_id).author
        return self.sponsor_gas(CallerContext(self._ledger_id), author, amount)

    def withdraw_platform_fee(self, caller: CallerContext) -> DisbursementReceipt:
        """Withdraw the platform fee to the operator.

        Raises:
            UnauthorizedError: If caller is not the operator.
            NothingToWithdrawError: If no fee is available.
            TransferFailedError: If the transfer service rejects the payout.
        """
        with self._operation("withdraw_platform_fee", caller=caller.identity):
            amount, event = self._pool.withdraw_platform_fee(caller.identity)
            self._persist()
            return DisbursementReceipt(recipient=self._operator_id, amount=amount, event=event)

    def get_pool_stats(self) -> PoolStats:
        return self._pool.get_stats()

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def events(
        self,
        kind: EventKind | None = None,
        post_id: int | None = None,
    ) -> list[DomainEvent]:
        return self._event_log.events(kind=kind, post_id=post_id)

    def reward_history(self) -> list[RewardOutcome]:
        with self._history_lock:
            return list(self._reward_history)

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def status(self) -> dict[str, Any]:
        """Summary of ledger, pool and audit state."""
        rewards = self.reward_history()
        return {
            "post_count": self._ledger.post_count,
            "event_count": self._event_log.count,
            "rewards_issued": sum(1 for r in rewards if r.success),
            "rewards_failed": sum(1 for r in rewards if not r.success),
            "pool": self._pool.get_stats().to_dict(),
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str, **arguments: Any) -> Generator[None, None, None]:
        with correlation_context():
            operation_logger.log_call(name, arguments)
            try:
                yield
            except VouchException as e:
                operation_logger.log_result(name, False, e.__class__.__name__)
                raise
            operation_logger.log_result(name, True)

    def _issue_rewards(self, event: DomainEvent) -> list[RewardOutcome]:
        instructions = self._policy.instructions_for(event)
        outcomes = issue_rewards(instructions, self._token_service)
        with self._history_lock:
            self._reward_history.extend(outcomes)
        return outcomes

    def _persist(self) -> None:
        # Components have already committed; a failed write only marks the
        # snapshot stale. Post fields JSON cannot encode (bytes, lone
        # surrogates) raise TypeError or ValueError here.
        if self._state_store is None:
            return
        with self._persist_lock:
            try:
                self._state_store.save(self._ledger.to_dict(), self._pool.to_dict())
            except (OSError, TypeError, ValueError) as e:
                self._persistence_degraded = True
                logger.error(f"State snapshot write failed, snapshot is stale: {e}")
