"""Tests for the fixed-delay retry combinator."""
import pytest

from services.retry import retry


class Flaky:
    def __init__(self, failures, exc=RuntimeError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"failure {self.calls}")
        return "done"


def test_first_attempt_success_does_not_sleep():
    sleeps = []
    result = retry(lambda: 42, 3, 1.0, sleep=sleeps.append)

    assert result.ok
    assert result.value == 42
    assert result.attempts == 1
    assert sleeps == []


def test_retries_with_fixed_delay_until_success():
    sleeps = []
    op = Flaky(failures=2)
    result = retry(op, 3, 1.0, sleep=sleeps.append)

    assert result.ok
    assert result.value == "done"
    assert result.attempts == 3
    assert sleeps == [1.0, 1.0]


def test_exhausted_budget_returns_last_error():
    sleeps = []
    op = Flaky(failures=5)
    result = retry(op, 3, 0.25, sleep=sleeps.append)

    assert not result.ok
    assert result.value is None
    assert result.attempts == 3
    assert str(result.error) == "failure 3"
    assert op.calls == 3
    # no sleep after the final attempt
    assert sleeps == [0.25, 0.25]


def test_initial_delay_is_slept_once_before_first_attempt():
    sleeps = []
    op = Flaky(failures=1)
    result = retry(op, 3, 1.0, initial_delay=0.5, sleep=sleeps.append)

    assert result.ok
    assert sleeps == [0.5, 1.0]


def test_give_up_on_stops_immediately():
    sleeps = []
    op = Flaky(failures=5, exc=KeyError)
    result = retry(op, 3, 1.0, sleep=sleeps.append, give_up_on=(KeyError,))

    assert not result.ok
    assert isinstance(result.error, KeyError)
    assert result.attempts == 1
    assert op.calls == 1
    assert sleeps == []


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        retry(lambda: None, 0, 1.0)
