"""Post ledger - append-only table of posts keyed by integer id.

The ledger assigns ids (1, 2, 3, ... with no gaps and no reuse), stores
posts permanently and owns the verification registry. There is no
delete or edit operation. The only permitted mutation is the
verification counter, which moves together with the registry entry
under the ledger lock so a (post, identity) pair can never be counted
twice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from .events import DomainEvent, EventKind, EventSink
from .exceptions import NotFoundError
from .models import Post, VerificationRecord
from .verification import VerificationRegistry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class Ledger:
    """In-memory append-only post ledger.

    Usage:
        ledger = Ledger()
        post_id, event = ledger.create_post("alice", "enc1", "ipfs1", "gate")
        record, event = ledger.record_verification(post_id, "bob")
        ledger.get_post(post_id).verification_count  # 1

    If on_commit is given it receives every event under the ledger lock.
    """

    def __init__(
        self,
        registry: VerificationRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_commit: EventSink | None = None,
    ) -> None:
        self._posts: dict[int, Post] = {}
        self._next_id = 1
        self._registry = registry or VerificationRegistry()
        self._clock = clock
        self._on_commit = on_commit
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_post(
        self,
        author: str,
        encrypted_content: str,
        media_reference: str,
        community: str,
    ) -> tuple[int, DomainEvent]:
        """Store a new post and return its id with a creation event.

        Content, media reference and community are opaque and are not
        validated.
        """
        with self._lock:
            post_id = self._next_id
            now = self._clock()
            self._posts[post_id] = Post(
                post_id=post_id,
                author=author,
                encrypted_content=encrypted_content,
                media_reference=media_reference,
                community=community,
                created_at=now,
            )
            self._next_id += 1
            event = DomainEvent(
                kind=EventKind.POST_CREATED,
                actor=author,
                timestamp=now,
                post_id=post_id,
                payload={"author": author, "community": community},
            )
            self._emit(event)

        logger.info(f"Post {post_id} created by {author} in {community}")
        return post_id, event

    def record_verification(
        self,
        post_id: int,
        verifier: str,
    ) -> tuple[VerificationRecord, DomainEvent]:
        """Record that verifier corroborates post_id.

        The existence check, dedup check, registry append and counter
        increment all happen under one lock acquisition.

        Raises:
            NotFoundError: If post_id was never created.
            AlreadyVerifiedError: If verifier already verified post_id.
        """
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                raise NotFoundError("Post", str(post_id))

            record = self._registry.record_verification(post_id, verifier, self._clock())
            post = replace(post, verification_count=post.verification_count + 1)
            self._posts[post_id] = post
            event = DomainEvent(
                kind=EventKind.POST_VERIFIED,
                actor=verifier,
                timestamp=record.verified_at,
                post_id=post_id,
                payload={
                    "verifier": verifier,
                    "author": post.author,
                    "verification_count": post.verification_count,
                },
            )
            self._emit(event)

        logger.info(
            f"Post {post_id} verified by {verifier} (count={post.verification_count})"
        )
        return record, event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_post(self, post_id: int) -> Post:
        """Return the post with post_id.

        Raises:
            NotFoundError: If post_id was never created.
        """
        with self._lock:
            post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError("Post", str(post_id))
        return post

    def get_verification_count(self, post_id: int) -> int:
        return self.get_post(post_id).verification_count

    def has_verified(self, post_id: int, identity: str) -> bool:
        return self._registry.has_verified(post_id, identity)

    def list_verifiers(self, post_id: int) -> list[VerificationRecord]:
        """Verification log for post_id in insertion order.

        Raises:
            NotFoundError: If post_id was never created.
        """
        self.get_post(post_id)
        return self._registry.list_verifiers(post_id)

    def list_posts(
        self,
        community: str | None = None,
        author: str | None = None,
    ) -> list[Post]:
        """All posts in id order, optionally filtered by community or author."""
        with self._lock:
            posts = [self._posts[post_id] for post_id in sorted(self._posts)]
        if community is not None:
            posts = [p for p in posts if p.community == community]
        if author is not None:
            posts = [p for p in posts if p.author == author]
        return posts

    @property
    def post_count(self) -> int:
        with self._lock:
            return self._next_id - 1

    def _emit(self, event: DomainEvent) -> None:
        # Caller holds the lock
        if self._on_commit is not None:
            self._on_commit(event)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            posts = [self._posts[post_id].to_dict() for post_id in sorted(self._posts)]
            registry = self._registry.to_dict()
        return {
            "posts": posts,
            "verifications": registry["verifications"],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        clock: Callable[[], datetime] = utc_now,
        on_commit: EventSink | None = None,
    ) -> Ledger:
        """Reconstruct a ledger from persisted data.

        Raises:
            ValueError: If post ids are not exactly 1..N, or a post's
                verification_count disagrees with the verification log.
            AlreadyVerifiedError: If the log holds a duplicate pair.
        """
        registry = VerificationRegistry.from_dict(data)
        ledger = cls(registry=registry, clock=clock, on_commit=on_commit)

        posts = [Post.from_dict(item) for item in data.get("posts", [])]
        posts.sort(key=lambda p: p.post_id)
        expected_ids = list(range(1, len(posts) + 1))
        if [p.post_id for p in posts] != expected_ids:
            raise ValueError("Persisted post ids must be the contiguous range 1..N")

        for post in posts:
            logged = registry.verification_count(post.post_id)
            if post.verification_count != logged:
                raise ValueError(
                    f"Post {post.post_id} has verification_count "
                    f"{post.verification_count} but {logged} logged verifications"
                )
            ledger._posts[post.post_id] = post

        orphaned = {
            int(item["post_id"]) for item in data.get("verifications", [])
        } - set(expected_ids)
        if orphaned:
            raise ValueError(f"Verifications reference unknown posts: {sorted(orphaned)}")

        ledger._next_id = len(posts) + 1
        return ledger
