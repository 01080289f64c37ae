"""Tests for vouch.core.fee_pool module.

Proves the pool's accounting invariants:
- Spend never exceeds the non-platform share of deposits.
- Balance never goes negative.
- Only the operator (or the ledger) can sponsor; only the operator can
  withdraw the platform fee.
- A rejected transfer leaves no trace in the counters.
"""

from __future__ import annotations

import random
import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from vouch.core.events import EventKind
from vouch.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    NothingToWithdrawError,
    TransferFailedError,
    UnauthorizedError,
    VouchException,
)
from vouch.core.fee_pool import FeePool, to_amount
from vouch.core.interfaces import InMemoryFundsTransfer

OPERATOR = "operator"
LEDGER = "ledger"


def _assert_conserved(pool: FeePool) -> None:
    stats = pool.get_stats()
    rate = pool.platform_fee_rate
    assert stats.total_spent <= stats.total_deposited * (Decimal("1") - rate)
    assert stats.balance >= 0


# ============================================================================
# Amount Parsing
# ============================================================================

class TestToAmount:
    """Tests for to_amount coercion."""

    @pytest.mark.parametrize("value", [0, -1, "0", "-0.01", Decimal("0"), "abc", "NaN", "Infinity", True])
    def test_rejects_non_positive_or_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            to_amount(value)

    def test_accepts_int_str_decimal(self):
        assert to_amount(5) == Decimal("5")
        assert to_amount("2.50") == Decimal("2.50")
        assert to_amount(Decimal("0.01")) == Decimal("0.01")


# ============================================================================
# Deposit
# ============================================================================

class TestDeposit:
    """Tests for FeePool.deposit."""

    def test_increments_total_deposited(self, pool):
        pool.deposit(Decimal("100"))
        pool.deposit(Decimal("50"), depositor="alice")

        stats = pool.get_stats()
        assert stats.total_deposited == Decimal("150")
        assert stats.balance == Decimal("150")
        assert stats.total_spent == Decimal("0")

    def test_returns_event(self, pool):
        event = pool.deposit(Decimal("100"), depositor="alice")
        assert event.kind == EventKind.POOL_DEPOSIT
        assert event.actor == "alice"
        assert event.payload == {"amount": "100", "total_deposited": "100"}

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_rejects_non_positive(self, pool, amount):
        with pytest.raises(InvalidAmountError):
            pool.deposit(amount)
        assert pool.get_stats().total_deposited == Decimal("0")


# ============================================================================
# Sponsor
# ============================================================================

class TestSponsor:
    """Tests for FeePool.sponsor."""

    def test_scenario_second_sponsorship_exceeds_remaining(self, pool, transfers):
        pool.deposit(Decimal("1000"))
        pool.sponsor(OPERATOR, "userA", Decimal("400"))

        stats = pool.get_stats()
        assert stats.balance == Decimal("600")
        assert stats.available_for_sponsorship == Decimal("580")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            pool.sponsor(OPERATOR, "userB", Decimal("700"))

        assert exc_info.value.requested == Decimal("700")
        assert exc_info.value.available == Decimal("580")
        assert pool.get_stats().total_spent == Decimal("400")
        assert transfers.total_sent_to("userA") == Decimal("400")
        assert transfers.total_sent_to("userB") == Decimal("0")

    def test_cannot_spend_platform_share(self, pool):
        pool.deposit(Decimal("1000"))
        with pytest.raises(InsufficientBalanceError):
            pool.sponsor(OPERATOR, "userA", Decimal("990"))
        pool.sponsor(OPERATOR, "userA", Decimal("980"))

        stats = pool.get_stats()
        assert stats.available_for_sponsorship == Decimal("0")
        assert stats.balance == Decimal("20")
        _assert_conserved(pool)

    def test_ledger_identity_may_sponsor(self, pool, transfers):
        pool.deposit(Decimal("100"))
        event = pool.sponsor(LEDGER, "alice", Decimal("10"))

        assert event.kind == EventKind.POOL_SPONSORED
        assert event.actor == LEDGER
        assert transfers.total_sent_to("alice") == Decimal("10")

    def test_other_callers_unauthorized(self, pool):
        pool.deposit(Decimal("100"))
        with pytest.raises(UnauthorizedError) as exc_info:
            pool.sponsor("mallory", "mallory", Decimal("10"))
        assert exc_info.value.identity == "mallory"
        assert pool.get_stats().total_spent == Decimal("0")

    def test_no_ledger_identity_configured(self, transfers):
        pool = FeePool(operator_id=OPERATOR, transfer_service=transfers)
        pool.deposit(Decimal("100"))
        with pytest.raises(UnauthorizedError):
            pool.sponsor(LEDGER, "alice", Decimal("10"))

    def test_authorization_checked_before_amount(self, pool):
        with pytest.raises(UnauthorizedError):
            pool.sponsor("mallory", "mallory", Decimal("0"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_rejects_non_positive(self, pool, amount):
        pool.deposit(Decimal("100"))
        with pytest.raises(InvalidAmountError):
            pool.sponsor(OPERATOR, "alice", amount)

    def test_empty_pool(self, pool):
        with pytest.raises(InsufficientBalanceError):
            pool.sponsor(OPERATOR, "alice", Decimal("1"))

    def test_rejected_transfer_rolls_back(self, pool, transfers):
        pool.deposit(Decimal("100"))
        transfers.fail_next = True

        with pytest.raises(TransferFailedError) as exc_info:
            pool.sponsor(OPERATOR, "alice", Decimal("50"))

        assert exc_info.value.recipient == "alice"
        stats = pool.get_stats()
        assert stats.total_spent == Decimal("0")
        assert stats.balance == Decimal("100")

        # Full amount is still available afterwards
        pool.sponsor(OPERATOR, "alice", Decimal("98"))
        assert pool.get_stats().total_spent == Decimal("98")

    def test_raising_transfer_service_rolls_back(self):
        service = MagicMock()
        service.transfer.side_effect = ConnectionError("rail down")
        pool = FeePool(operator_id=OPERATOR, transfer_service=service)
        pool.deposit(Decimal("100"))

        with pytest.raises(TransferFailedError) as exc_info:
            pool.sponsor(OPERATOR, "alice", Decimal("10"))

        assert "rail down" in exc_info.value.reason
        assert pool.get_stats().total_spent == Decimal("0")

    @pytest.mark.slow
    def test_concurrent_sponsorships_never_overdraw(self, pool, transfers):
        pool.deposit(Decimal("1000"))
        barrier = threading.Barrier(20)

        def worker():
            barrier.wait()
            try:
                pool.sponsor(OPERATOR, "alice", Decimal("100"))
            except InsufficientBalanceError:
                pass

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = pool.get_stats()
        assert stats.total_spent == Decimal("900")
        assert transfers.total_sent_to("alice") == Decimal("900")
        _assert_conserved(pool)


# ============================================================================
# Platform Fee
# ============================================================================

class TestWithdrawPlatformFee:
    """Tests for FeePool.withdraw_platform_fee."""

    def test_nothing_deposited(self, pool):
        with pytest.raises(NothingToWithdrawError):
            pool.withdraw_platform_fee(OPERATOR)

    def test_withdraws_fee_share_to_operator(self, pool, transfers):
        pool.deposit(Decimal("1000"))
        amount, event = pool.withdraw_platform_fee(OPERATOR)

        assert amount == Decimal("20")
        assert event.kind == EventKind.PLATFORM_FEE_WITHDRAWN
        assert transfers.total_sent_to(OPERATOR) == Decimal("20")
        stats = pool.get_stats()
        assert stats.balance == Decimal("980")
        assert stats.total_fees_withdrawn == Decimal("20")
        assert stats.total_spent == Decimal("0")

    def test_recomputes_from_lifetime_deposits(self, pool):
        pool.deposit(Decimal("1000"))
        first, _ = pool.withdraw_platform_fee(OPERATOR)
        second, _ = pool.withdraw_platform_fee(OPERATOR)

        assert first == second == Decimal("20")
        assert pool.get_stats().balance == Decimal("960")
        _assert_conserved(pool)

    def test_clamped_to_balance(self, pool):
        pool.deposit(Decimal("1000"))
        pool.sponsor(OPERATOR, "alice", Decimal("980"))
        pool.withdraw_platform_fee(OPERATOR)
        assert pool.get_stats().balance == Decimal("0")

        with pytest.raises(NothingToWithdrawError):
            pool.withdraw_platform_fee(OPERATOR)

    def test_partial_when_balance_short(self, pool):
        pool.deposit(Decimal("1000"))
        pool.withdraw_platform_fee(OPERATOR)
        pool.sponsor(OPERATOR, "alice", Decimal("970"))

        amount, _ = pool.withdraw_platform_fee(OPERATOR)
        assert amount == Decimal("10")
        assert pool.get_stats().balance == Decimal("0")

    def test_ledger_identity_cannot_withdraw(self, pool):
        pool.deposit(Decimal("1000"))
        with pytest.raises(UnauthorizedError):
            pool.withdraw_platform_fee(LEDGER)

    def test_zero_fee_rate(self, transfers):
        pool = FeePool(
            operator_id=OPERATOR,
            transfer_service=transfers,
            platform_fee_rate=Decimal("0"),
        )
        pool.deposit(Decimal("100"))
        with pytest.raises(NothingToWithdrawError):
            pool.withdraw_platform_fee(OPERATOR)

    def test_rejected_transfer_rolls_back(self, pool, transfers):
        pool.deposit(Decimal("1000"))
        transfers.rejected.add(OPERATOR)

        with pytest.raises(TransferFailedError):
            pool.withdraw_platform_fee(OPERATOR)
        stats = pool.get_stats()
        assert stats.balance == Decimal("1000")
        assert stats.total_fees_withdrawn == Decimal("0")


# ============================================================================
# Stats, Construction and Persistence
# ============================================================================

class TestPoolState:
    """Tests for stats, construction checks and snapshots."""

    def test_stats_tuple(self, pool):
        pool.deposit(Decimal("1000"))
        pool.sponsor(OPERATOR, "alice", Decimal("400"))
        assert pool.get_stats().as_tuple() == (
            Decimal("600"),
            Decimal("1000"),
            Decimal("400"),
            Decimal("580"),
        )

    @pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("1"), Decimal("1.5")])
    def test_rejects_bad_fee_rate(self, transfers, rate):
        with pytest.raises(ValueError):
            FeePool(operator_id=OPERATOR, transfer_service=transfers, platform_fee_rate=rate)

    def test_get_state_is_a_copy(self, pool):
        pool.deposit(Decimal("10"))
        state = pool.get_state()
        state.total_deposited = Decimal("999")
        assert pool.get_stats().total_deposited == Decimal("10")

    def test_snapshot_round_trip(self, pool, transfers):
        pool.deposit(Decimal("1000"))
        pool.sponsor(OPERATOR, "alice", Decimal("300"))
        pool.withdraw_platform_fee(OPERATOR)

        restored = FeePool.from_dict(pool.to_dict(), operator_id=OPERATOR, transfer_service=transfers)
        assert restored.get_stats() == pool.get_stats()

    def test_from_dict_rejects_overspent_state(self, transfers):
        data = {
            "platform_fee_rate": "0.02",
            "total_deposited": "100",
            "total_spent": "99",
            "total_fees_withdrawn": "0",
        }
        with pytest.raises(ValueError):
            FeePool.from_dict(data, operator_id=OPERATOR, transfer_service=transfers)

    @pytest.mark.slow
    def test_random_operation_sequences_preserve_invariants(self, clock):
        rng = random.Random(1234)
        transfers = InMemoryFundsTransfer()
        pool = FeePool(operator_id=OPERATOR, transfer_service=transfers, ledger_id=LEDGER, clock=clock)

        for _ in range(500):
            op = rng.choice(["deposit", "sponsor", "withdraw", "fail"])
            amount = Decimal(rng.randint(-5, 300))
            try:
                if op == "deposit":
                    pool.deposit(amount)
                elif op == "sponsor":
                    pool.sponsor(rng.choice([OPERATOR, LEDGER, "mallory"]), "alice", amount)
                elif op == "withdraw":
                    pool.withdraw_platform_fee(rng.choice([OPERATOR, "mallory"]))
                else:
                    transfers.fail_next = True
                    pool.sponsor(OPERATOR, "alice", amount)
            except VouchException:
                pass
            _assert_conserved(pool)

        stats = pool.get_stats()
        sent = sum((t.amount for t in transfers.transfers), Decimal("0"))
        assert stats.balance == stats.total_deposited - sent


# ============================================================================
# Commit Sink
# ============================================================================

class TestCommitSink:
    """Events handed to on_commit as each payout or deposit commits."""

    def _pool(self, transfers, clock, received):
        return FeePool(
            operator_id=OPERATOR,
            transfer_service=transfers,
            ledger_id=LEDGER,
            clock=clock,
            on_commit=received.append,
        )

    def test_sink_receives_committed_events(self, transfers, clock):
        received = []
        pool = self._pool(transfers, clock, received)

        deposit = pool.deposit(Decimal("100"))
        sponsored = pool.sponsor(OPERATOR, "carol", Decimal("10"))
        _, withdrawn = pool.withdraw_platform_fee(OPERATOR)

        assert received == [deposit, sponsored, withdrawn]

    def test_failed_transfer_not_sent(self, transfers, clock):
        received = []
        pool = self._pool(transfers, clock, received)
        pool.deposit(Decimal("100"))
        transfers.fail_next = True

        with pytest.raises(TransferFailedError):
            pool.sponsor(OPERATOR, "carol", Decimal("10"))

        assert [e.kind for e in received] == [EventKind.POOL_DEPOSIT]
