"""Global test fixtures for Vouch test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from vouch.core.config import clear_config_cache
from vouch.core.fee_pool import FeePool
from vouch.core.interfaces import InMemoryFundsTransfer, InMemoryTokenAccounts
from vouch.core.ledger import Ledger
from vouch.core.service import CallerContext, VouchService


OPERATOR = "operator"
LEDGER = "ledger"


class StepClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the cached settings around every test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all VOUCH_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("VOUCH_"):
            monkeypatch.delenv(key, raising=False)


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def tokens() -> InMemoryTokenAccounts:
    return InMemoryTokenAccounts()


@pytest.fixture
def transfers() -> InMemoryFundsTransfer:
    return InMemoryFundsTransfer()


@pytest.fixture
def ledger(clock) -> Ledger:
    return Ledger(clock=clock)


@pytest.fixture
def pool(transfers, clock) -> FeePool:
    return FeePool(
        operator_id=OPERATOR,
        transfer_service=transfers,
        platform_fee_rate=Decimal("0.02"),
        ledger_id=LEDGER,
        clock=clock,
    )


@pytest.fixture
def service(clean_env, tokens, transfers, clock) -> VouchService:
    return VouchService(
        token_service=tokens,
        transfer_service=transfers,
        operator_id=OPERATOR,
        ledger_id=LEDGER,
        clock=clock,
    )


@pytest.fixture
def operator() -> CallerContext:
    return CallerContext(OPERATOR)
