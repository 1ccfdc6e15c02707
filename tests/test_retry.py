import random

import pytest
import requests

from enricher.errors import (
    ParseFailure,
    PermanentExternalError,
    TransientExternalError,
    classify_http_status,
    is_transient,
)
from enricher.retry import RetryPolicy, Throttle


class _Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _policy(sleeps, **kwargs):
    return RetryPolicy(sleep=sleeps.append, rng=random.Random(7), **kwargs)


def test_two_timeouts_then_success_sleeps_twice_with_backoff():
    sleeps = []
    op = _Flaky([TransientExternalError("timed out"), requests.Timeout("read timed out")])

    assert _policy(sleeps).call(op, label="research") == "ok"
    assert op.calls == 3
    assert len(sleeps) == 2
    assert 2.0 <= sleeps[0] <= 3.0
    assert 4.0 <= sleeps[1] <= 5.0


def test_non_transient_error_is_not_retried():
    sleeps = []
    op = _Flaky([PermanentExternalError("400 bad request")])

    with pytest.raises(PermanentExternalError):
        _policy(sleeps).call(op)
    assert op.calls == 1
    assert sleeps == []


def test_exhausted_retries_raise_last_error_unchanged():
    sleeps = []
    last = TransientExternalError("rate limit (429) third")
    op = _Flaky([TransientExternalError("first"), TransientExternalError("second"), last])

    with pytest.raises(TransientExternalError) as excinfo:
        _policy(sleeps, max_retries=2).call(op)
    assert excinfo.value is last
    assert op.calls == 3
    assert len(sleeps) == 2


def test_zero_retries_calls_once():
    sleeps = []
    op = _Flaky([TransientExternalError("timeout")])
    with pytest.raises(TransientExternalError):
        _policy(sleeps, max_retries=0).call(op)
    assert op.calls == 1


def test_delay_without_jitter_is_exponential():
    policy = RetryPolicy(base_delay=2.0, jitter=0.0)
    assert [policy.delay_for(n) for n in range(3)] == [2.0, 4.0, 8.0]


def test_transient_classifier():
    assert is_transient(TransientExternalError("x"))
    assert is_transient(requests.Timeout())
    assert is_transient(RuntimeError("Request timed out after 10s"))
    assert is_transient(RuntimeError("HTTP 429 Too Many Requests"))
    assert not is_transient(ParseFailure("bad json", snippet="{"))
    assert not is_transient(PermanentExternalError("rate limit mentioned but permanent"))
    assert not is_transient(ValueError("invalid url"))


def test_http_status_mapping():
    assert isinstance(classify_http_status("Svc", 429, ""), TransientExternalError)
    assert isinstance(classify_http_status("Svc", 504, ""), TransientExternalError)
    assert isinstance(classify_http_status("Svc", 401, "unauthorized"), PermanentExternalError)
    assert isinstance(classify_http_status("Svc", 500, ""), PermanentExternalError)


def test_throttle_spaces_successive_calls():
    sleeps = []
    throttle = Throttle(min_interval=1.0, sleep=sleeps.append)
    throttle.wait()
    throttle.wait()
    assert len(sleeps) == 1
    assert 0.0 < sleeps[0] <= 1.0


def test_disabled_throttle_never_sleeps():
    sleeps = []
    throttle = Throttle(min_interval=0, sleep=sleeps.append)
    for _ in range(3):
        throttle.wait()
    assert sleeps == []
