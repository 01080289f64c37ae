"""Data models for the vouch ledger.

Contains the post and verification records owned by the ledger, the
reward instruction value object, and the fee pool state.

All monetary and token amounts use Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


# ============================================================================
# Ledger Records
# ============================================================================

@dataclass(frozen=True)
class Post:
    """An immutable user-submitted record.

    Content and media reference are opaque; they are stored and returned
    but never inspected. The only field that ever changes is
    verification_count, and the ledger changes it by replacing the whole
    record.
    """
    post_id: int
    author: str
    encrypted_content: str
    media_reference: str
    community: str
    created_at: datetime
    verification_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "author": self.author,
            "encrypted_content": self.encrypted_content,
            "media_reference": self.media_reference,
            "community": self.community,
            "created_at": self.created_at.isoformat(),
            "verification_count": self.verification_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Post:
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            post_id=int(data["post_id"]),
            author=data["author"],
            encrypted_content=data["encrypted_content"],
            media_reference=data["media_reference"],
            community=data["community"],
            created_at=created_at,
            verification_count=int(data.get("verification_count", 0)),
        )


# Posts are frozen, so the stored record doubles as the read view.
PostView = Post


@dataclass(frozen=True)
class VerificationRecord:
    """One identity's attestation of one post."""
    post_id: int
    verifier: str
    verified_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "verifier": self.verifier,
            "verified_at": self.verified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationRecord:
        verified_at = data["verified_at"]
        if isinstance(verified_at, str):
            verified_at = datetime.fromisoformat(verified_at)
        return cls(
            post_id=int(data["post_id"]),
            verifier=data["verifier"],
            verified_at=verified_at,
        )


# ============================================================================
# Rewards
# ============================================================================

class RewardReason(str, Enum):
    """Why a reward instruction was issued."""
    POST_CREATED = "post created"
    POST_VERIFIED = "post verified"          # paid to the verifier
    POST_WAS_VERIFIED = "post was verified"  # paid to the author


@dataclass(frozen=True)
class RewardInstruction:
    """A decision to credit an identity's token balance.

    Produced by RewardPolicy and consumed within the same request.
    """
    recipient: str
    amount: Decimal
    reason: RewardReason

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "amount": str(self.amount),
            "reason": self.reason.value,
        }


# ============================================================================
# Fee Pool
# ============================================================================

@dataclass
class FeePoolState:
    """Observable state of the shared fee pool.

    Counters only ever grow. The balance is derived: deposits minus
    sponsorship spend minus platform fees paid out.

    Invariants:
        total_spent <= total_deposited * (1 - platform_fee_rate)
        current_balance >= 0
    """
    platform_fee_rate: Decimal = Decimal("0.02")
    total_deposited: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    total_fees_withdrawn: Decimal = Decimal("0")

    @property
    def current_balance(self) -> Decimal:
        return self.total_deposited - self.total_spent - self.total_fees_withdrawn

    @property
    def platform_fee_share(self) -> Decimal:
        """Platform share of lifetime deposits."""
        return self.total_deposited * self.platform_fee_rate

    @property
    def available_for_sponsorship(self) -> Decimal:
        return self.total_deposited * (Decimal("1") - self.platform_fee_rate) - self.total_spent

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform_fee_rate": str(self.platform_fee_rate),
            "total_deposited": str(self.total_deposited),
            "total_spent": str(self.total_spent),
            "total_fees_withdrawn": str(self.total_fees_withdrawn),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeePoolState:
        return cls(
            platform_fee_rate=Decimal(data["platform_fee_rate"]),
            total_deposited=Decimal(data["total_deposited"]),
            total_spent=Decimal(data["total_spent"]),
            total_fees_withdrawn=Decimal(data.get("total_fees_withdrawn", "0")),
        )


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time snapshot of the fee pool."""
    balance: Decimal
    total_deposited: Decimal
    total_spent: Decimal
    available_for_sponsorship: Decimal
    total_fees_withdrawn: Decimal = Decimal("0")

    def as_tuple(self) -> tuple[Decimal, Decimal, Decimal, Decimal]:
        """(balance, deposited, spent, available)."""
        return (
            self.balance,
            self.total_deposited,
            self.total_spent,
            self.available_for_sponsorship,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": str(self.balance),
            "total_deposited": str(self.total_deposited),
            "total_spent": str(self.total_spent),
            "available_for_sponsorship": str(self.available_for_sponsorship),
            "total_fees_withdrawn": str(self.total_fees_withdrawn),
        }
