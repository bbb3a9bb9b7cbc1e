import pytest

from brand_sanitizer.config import Config
from brand_sanitizer.exceptions import DetectionError
from brand_sanitizer.retry import RetryPolicy


def test_succeeds_after_transient_failures():
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise DetectionError("transient")
        return "ok"

    policy = RetryPolicy(max_attempts=3, initial_delay_s=1.0, multiplier=2.0, sleep=sleeps.append)

    assert policy.call(flaky) == "ok"
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_delays_are_capped():
    policy = RetryPolicy(initial_delay_s=1.0, max_delay_s=5.0, multiplier=3.0)
    assert [policy.delay_for(a) for a in range(4)] == [1.0, 3.0, 5.0, 5.0]


def test_non_retryable_error_propagates_immediately():
    calls = []

    def broken():
        calls.append(1)
        raise KeyError("bug")

    policy = RetryPolicy(max_attempts=5, retry_on=(DetectionError,), sleep=lambda s: None)
    with pytest.raises(KeyError):
        policy.call(broken)
    assert len(calls) == 1


def test_none_policy_calls_once():
    calls = []

    def failing():
        calls.append(1)
        raise DetectionError("down")

    with pytest.raises(DetectionError):
        RetryPolicy.none().call(failing)
    assert len(calls) == 1


def test_from_config():
    config = Config(retry_max_attempts=4, retry_initial_delay_ms=250, retry_max_delay_ms=2000)
    policy = RetryPolicy.from_config(config, retry_on=(DetectionError,))
    assert policy.max_attempts == 4
    assert policy.initial_delay_s == 0.25
    assert policy.max_delay_s == 2.0
    assert policy.retry_on == (DetectionError,)
