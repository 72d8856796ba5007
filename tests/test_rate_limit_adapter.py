"""Unit tests for the in-memory token-bucket rate limiter."""

import threading
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryTokenBucketRateLimiter


def test_allows_capacity_then_rejects() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=3, clock=clock)

    assert [limiter.allow("c1") for _ in range(4)] == [True, True, True, False]


def test_first_request_leaves_capacity_minus_one() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=5, clock=clock)

    result = limiter.consume("c1")

    assert result.allowed is True
    assert result.limit == 5
    assert result.remaining == 4
    assert result.retry_after_seconds is None


def test_bucket_is_full_again_after_a_minute() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=3, clock=clock)
    for _ in range(3):
        limiter.allow("c1")
    assert limiter.allow("c1") is False

    clock.return_value = 1060.0

    assert [limiter.allow("c1") for _ in range(4)] == [True, True, True, False]


def test_refill_is_continuous() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=60, clock=clock)
    for _ in range(60):
        assert limiter.allow("c1") is True
    assert limiter.allow("c1") is False

    # One token per second at 60 rpm: half a second is not enough
    clock.return_value = 1000.5
    assert limiter.allow("c1") is False

    clock.return_value = 1001.0
    assert limiter.allow("c1") is True
    assert limiter.allow("c1") is False


def test_tokens_never_exceed_capacity() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=3, clock=clock)
    limiter.allow("c1")

    clock.return_value = 1000.0 + 3600
    result = limiter.consume("c1")

    assert result.allowed is True
    assert result.remaining == 2


def test_blocked_result_carries_retry_metadata() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=3, clock=clock)
    for _ in range(3):
        limiter.consume("c1")

    blocked = limiter.consume("c1")

    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.retry_after_seconds is not None
    assert 1 <= blocked.retry_after_seconds <= 20
    assert blocked.reset_at >= 1000


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=1, clock=clock)

    assert limiter.allow("k1") is True
    assert limiter.allow("k1") is False

    assert limiter.allow("k2") is True


def test_purge_idle_evicts_only_stale_clients() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(
        requests_per_minute=3, idle_retention_seconds=3600, clock=clock
    )
    limiter.allow("old")

    clock.return_value = 3000.0
    limiter.allow("fresh")

    clock.return_value = 4601.0
    assert limiter.purge_idle() == 1
    assert len(limiter) == 1


def test_evicted_client_starts_over_with_first_hit_allowance() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(
        requests_per_minute=2, idle_retention_seconds=60, clock=clock
    )
    limiter.allow("c1")
    limiter.allow("c1")

    clock.return_value = 1061.0
    limiter.purge_idle()
    assert len(limiter) == 0

    assert limiter.consume("c1").remaining == 1


def test_clock_is_read_while_holding_the_lock() -> None:
    lock_held: list[bool] = []
    limiter: InMemoryTokenBucketRateLimiter

    def _clock() -> float:
        lock_held.append(limiter._lock.locked())
        return 1000.0

    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=3, clock=_clock)
    limiter.consume("c1")
    limiter.consume("c1")
    limiter.purge_idle()

    assert lock_held == [True, True, True]


def test_stale_timestamp_does_not_rewind_refill() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=60, clock=clock)
    for _ in range(60):
        limiter.allow("c1")

    clock.return_value = 1010.0
    assert limiter.consume("c1").remaining == 9

    # A late caller carrying an older reading must not re-credit 1000..1010
    clock.return_value = 1005.0
    for _ in range(9):
        assert limiter.allow("c1") is True
    assert limiter.allow("c1") is False

    clock.return_value = 1010.0
    assert limiter.allow("c1") is False


def test_concurrent_callers_never_exceed_capacity() -> None:
    limiter = InMemoryTokenBucketRateLimiter(requests_per_minute=10, clock=lambda: 1000.0)
    results: list[bool] = []
    results_lock = threading.Lock()

    def _caller() -> None:
        allowed = limiter.allow("shared")
        with results_lock:
            results.append(allowed)

    threads = [threading.Thread(target=_caller) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 10
    assert results.count(False) == 40


@pytest.mark.parametrize(
    "kwargs",
    [
        {"requests_per_minute": 0},
        {"requests_per_minute": 10, "idle_retention_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryTokenBucketRateLimiter(**kwargs)
