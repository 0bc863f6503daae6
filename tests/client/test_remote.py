"""Tests for the rate-limited remote wrapper."""

from __future__ import annotations

import pytest

from flatsync.client.concurrency import QuotaExceededError, TokenBucketRateLimiter
from flatsync.client.remote import IDENTITY, BatchRemoteClient, RateLimitedRemote
from tests.fakes import BatchInMemoryRemote, FakeClock, InMemoryRemote


class TestRateLimitedRemote:
    """Tests for RateLimitedRemote."""

    def test_every_call_charged(self, clock: FakeClock) -> None:
        inner = InMemoryRemote({"p": {"a": "1"}})
        limiter = TokenBucketRateLimiter(capacity=4, refill_rate=1.0, clock=clock)
        remote = RateLimitedRemote(inner, limiter)

        remote.list_files("p")
        remote.get_file("p", "a")
        remote.create_or_update_file("p", "b", "2")
        remote.delete_file("p", "b")

        assert limiter.get_token_count() == 0

    def test_rejected_call_never_reaches_client(self, clock: FakeClock) -> None:
        inner = InMemoryRemote()
        limiter = TokenBucketRateLimiter(capacity=1, refill_rate=0.5, clock=clock)
        remote = RateLimitedRemote(inner, limiter)
        remote.list_files("p")

        with pytest.raises(QuotaExceededError) as exc_info:
            remote.get_file("p", "a")

        assert exc_info.value.retry_after_seconds == 2
        assert inner.calls == [("list_files", "")]

    def test_batch_is_one_call(self, clock: FakeClock) -> None:
        limiter = TokenBucketRateLimiter(capacity=5, refill_rate=1.0, clock=clock)
        remote = RateLimitedRemote(BatchInMemoryRemote(), limiter)

        assert remote.supports_batch is True
        remote.update_files("p", {"a": "1", "b": "2"}, [])

        assert limiter.get_token_count() == 4

    def test_batch_unsupported(self) -> None:
        remote = RateLimitedRemote(InMemoryRemote(), TokenBucketRateLimiter())
        assert remote.supports_batch is False
        with pytest.raises(TypeError, match="batch"):
            remote.update_files("p", {}, [])

    def test_protocol_check(self) -> None:
        assert isinstance(BatchInMemoryRemote(), BatchRemoteClient)
        assert not isinstance(InMemoryRemote(), BatchRemoteClient)


class TestContentTransform:
    """Tests for the default transform."""

    def test_identity(self) -> None:
        assert IDENTITY.wrap("x") == "x"
        assert IDENTITY.unwrap("x") == "x"
