import pytest

from utils.errors import ChallengeDetected, FetchError, JobUnavailable
from utils.retry import RetryExhausted, RetryPolicy


def _policy(**kw):
    sleeps = []
    kw.setdefault("base_delay", 2.0)
    kw.setdefault("jitter", 0.0)
    return RetryPolicy(sleep=sleeps.append, **kw), sleeps


def _flaky(failures, exc=FetchError):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc(f"fail {calls['n']}")
        return "ok"

    return fn, calls


def test_succeeds_after_retries_with_exponential_backoff():
    policy, sleeps = _policy(max_retries=3)
    fn, calls = _flaky(2)
    assert policy.call(fn) == ("ok", 3)
    assert calls["n"] == 3
    assert sleeps == [2.0, 4.0]


def test_exhaustion_raises_with_last_error():
    policy, sleeps = _policy(max_retries=2)
    fn, calls = _flaky(10, exc=ChallengeDetected)
    with pytest.raises(RetryExhausted) as ei:
        policy.call(fn)
    assert calls["n"] == 3
    assert ei.value.attempts == 3
    assert isinstance(ei.value.last_error, ChallengeDetected)
    assert str(ei.value.last_error) == "fail 3"
    assert len(sleeps) == 2


def test_zero_retries_means_one_attempt():
    policy, sleeps = _policy(max_retries=0)
    fn, calls = _flaky(1)
    with pytest.raises(RetryExhausted):
        policy.call(fn)
    assert calls["n"] == 1
    assert sleeps == []


def test_non_retryable_errors_propagate_immediately():
    policy, sleeps = _policy(max_retries=3)
    fn, calls = _flaky(1, exc=JobUnavailable)
    with pytest.raises(JobUnavailable):
        policy.call(fn)
    assert calls["n"] == 1
    assert sleeps == []


def test_on_retry_sees_attempt_and_delay():
    seen = []
    policy, _ = _policy(max_retries=2, base_delay=1.0)
    fn, _ = _flaky(2)
    policy.call(fn, on_retry=lambda n, e, d: seen.append((n, str(e), d)))
    assert seen == [(1, "fail 1", 1.0), (2, "fail 2", 2.0)]


def test_jitter_stays_within_bounds():
    policy, sleeps = _policy(max_retries=3, base_delay=2.0, jitter=1.0)
    fn, _ = _flaky(3)
    assert policy.call(fn) == ("ok", 4)
    assert len(sleeps) == 3
    for base, slept in zip([2.0, 4.0, 8.0], sleeps):
        assert base <= slept <= base + 1.0


def test_success_on_first_attempt_never_sleeps():
    policy, sleeps = _policy(max_retries=3)
    assert policy.call(lambda: 42) == (42, 1)
    assert sleeps == []
