"""Reward policy - maps ledger events to token reward instructions.

The policy is a fixed decision table with no mutable state:

    post_created  -> (author,   post_creation_reward,   "post created")
    post_verified -> (verifier, verifier_reward,        "post verified")
                     (author,   verified_author_reward, "post was verified")

Applying instructions is a separate step. A rejected reward is reported
as a failed RewardOutcome and never unwinds the ledger mutation that
produced the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .events import DomainEvent, EventKind
from .interfaces import TokenAccountService
from .models import RewardInstruction, RewardReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardConstants:
    """Reward amounts, in tokens."""
    post_creation_reward: Decimal = Decimal("10")
    verifier_reward: Decimal = Decimal("5")
    verified_author_reward: Decimal = Decimal("2")


@dataclass(frozen=True)
class RewardOutcome:
    """Result of applying one reward instruction."""
    instruction: RewardInstruction
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "instruction": self.instruction.to_dict(),
            "success": self.success,
            "error": self.error,
        }


class RewardPolicy:
    """Pure function from domain events to reward instructions."""

    def __init__(self, constants: RewardConstants | None = None) -> None:
        self._constants = constants or RewardConstants()

    @property
    def constants(self) -> RewardConstants:
        return self._constants

    def on_post_created(self, author: str) -> list[RewardInstruction]:
        return [
            RewardInstruction(
                recipient=author,
                amount=self._constants.post_creation_reward,
                reason=RewardReason.POST_CREATED,
            )
        ]

    def on_post_verified(self, verifier: str, author: str) -> list[RewardInstruction]:
        return [
            RewardInstruction(
                recipient=verifier,
                amount=self._constants.verifier_reward,
                reason=RewardReason.POST_VERIFIED,
            ),
            RewardInstruction(
                recipient=author,
                amount=self._constants.verified_author_reward,
                reason=RewardReason.POST_WAS_VERIFIED,
            ),
        ]

    def instructions_for(self, event: DomainEvent) -> list[RewardInstruction]:
        """Reward instructions triggered by event (empty for pool events)."""
        if event.kind == EventKind.POST_CREATED:
            return self.on_post_created(event.payload["author"])
        if event.kind == EventKind.POST_VERIFIED:
            return self.on_post_verified(event.payload["verifier"], event.payload["author"])
        return []


def issue_rewards(
    instructions: list[RewardInstruction],
    token_service: TokenAccountService,
) -> list[RewardOutcome]:
    """Apply each instruction through the token service.

    Every instruction is attempted even if an earlier one fails.
    Rejections and collaborator errors become failed outcomes.
    """
    outcomes = []
    for instruction in instructions:
        try:
            accepted = token_service.reward(instruction.recipient, instruction.amount)
        except Exception as e:  # Intentionally broad: external collaborator boundary
            logger.warning(
                f"Reward of {instruction.amount} to {instruction.recipient} "
                f"({instruction.reason.value}) raised: {e}"
            )
            outcomes.append(RewardOutcome(instruction, success=False, error=str(e)))
            continue

        if accepted:
            outcomes.append(RewardOutcome(instruction, success=True))
        else:
            logger.warning(
                f"Reward of {instruction.amount} to {instruction.recipient} "
                f"({instruction.reason.value}) rejected by token service"
            )
            outcomes.append(
                RewardOutcome(instruction, success=False, error="rejected by token service")
            )
    return outcomes
