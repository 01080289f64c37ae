"""Verification registry - per-post verifier sets and ordered logs.

Tracks which identities have verified which posts and enforces the
dedup rule: at most one verification per (post, identity) pair. The
registry does not know whether a post exists; the ledger checks that
and calls in while holding its own lock.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from .exceptions import AlreadyVerifiedError
from .models import VerificationRecord

logger = logging.getLogger(__name__)


class VerificationRegistry:
    """Dedup set and insertion-ordered verification log.

    Usage:
        registry = VerificationRegistry()
        registry.record_verification(1, "did:key:alice", now)
        registry.has_verified(1, "did:key:alice")  # True
        registry.list_verifiers(1)  # [VerificationRecord(...)]
    """

    def __init__(self) -> None:
        self._pairs: set[tuple[int, str]] = set()
        self._logs: dict[int, list[VerificationRecord]] = {}
        self._lock = threading.Lock()

    def has_verified(self, post_id: int, identity: str) -> bool:
        """Whether identity has already verified post_id."""
        with self._lock:
            return (post_id, identity) in self._pairs

    def record_verification(
        self,
        post_id: int,
        identity: str,
        timestamp: datetime,
    ) -> VerificationRecord:
        """Mark (post_id, identity) verified and append to the post's log.

        Raises:
            AlreadyVerifiedError: If the pair is already recorded. A second
                call with the same pair always fails.
        """
        with self._lock:
            key = (post_id, identity)
            if key in self._pairs:
                raise AlreadyVerifiedError(post_id, identity)

            record = VerificationRecord(
                post_id=post_id,
                verifier=identity,
                verified_at=timestamp,
            )
            self._pairs.add(key)
            self._logs.setdefault(post_id, []).append(record)

        logger.debug(f"Recorded verification of post {post_id} by {identity}")
        return record

    def list_verifiers(self, post_id: int) -> list[VerificationRecord]:
        """Committed verifications for post_id in insertion order.

        Returns a fresh list on every call, so iteration can be restarted
        and is unaffected by later verifications.
        """
        with self._lock:
            return list(self._logs.get(post_id, ()))

    def verification_count(self, post_id: int) -> int:
        with self._lock:
            return len(self._logs.get(post_id, ()))

    @property
    def total_verifications(self) -> int:
        with self._lock:
            return len(self._pairs)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize the ordered log. The pair set is derived from it."""
        with self._lock:
            return {
                "verifications": [
                    record.to_dict()
                    for post_id in sorted(self._logs)
                    for record in self._logs[post_id]
                ],
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationRegistry:
        """Rebuild a registry from persisted data.

        Raises:
            AlreadyVerifiedError: If the data holds a duplicate pair.
        """
        registry = cls()
        for item in data.get("verifications", []):
            record = VerificationRecord.from_dict(item)
            registry.record_verification(record.post_id, record.verifier, record.verified_at)
        return registry
