from conftest import FakeClock
from rate_limiter import RateLimiter, TokenBucket


def test_bucket_starts_full_and_empties():
    limiter = RateLimiter(per_second=3, clock=FakeClock())
    assert [limiter.try_consume("a") for _ in range(4)] == [True, True, True, False]


def test_bucket_refills_after_waiting():
    clock = FakeClock()
    limiter = RateLimiter(per_second=2, clock=clock)
    assert limiter.try_consume("a")
    assert limiter.try_consume("a")
    assert not limiter.try_consume("a")

    clock.advance(0.25)  # half a token
    assert not limiter.try_consume("a")

    clock.advance(0.25)
    assert limiter.try_consume("a")
    assert not limiter.try_consume("a")


def test_refill_is_capped_at_capacity():
    clock = FakeClock()
    limiter = RateLimiter(per_second=2, clock=clock)
    limiter.try_consume("a")
    clock.advance(60)
    assert [limiter.try_consume("a") for _ in range(3)] == [True, True, False]


def test_buckets_are_per_connection():
    limiter = RateLimiter(per_second=1, clock=FakeClock())
    assert limiter.try_consume("a")
    assert not limiter.try_consume("a")
    assert limiter.try_consume("b")


def test_discard_drops_bucket():
    limiter = RateLimiter(per_second=1, clock=FakeClock())
    limiter.try_consume("a")
    assert len(limiter) == 1
    limiter.discard("a")
    limiter.discard("a")
    assert len(limiter) == 0
    # A new bucket starts full again
    assert limiter.try_consume("a")


def test_token_bucket_ignores_clock_going_backwards():
    bucket = TokenBucket(rate=1, capacity=1, now=10.0)
    assert bucket.consume(10.0)
    assert not bucket.consume(5.0)
    assert bucket.tokens == 0
