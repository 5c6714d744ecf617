"""retry_on_conflict: caller-side retry of whole operations."""

import pytest

from lending_kernel.exceptions import ConcurrentModificationError, NoPenaltyToWaiveError
from lending_services.retry import retry_on_conflict


class FlakyOperation:
    """Conflicts ``failures`` times, then returns ``"done"``."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConcurrentModificationError(f"attempt {self.calls}")
        return "done"


@pytest.fixture
def sleeps():
    return []


def test_succeeds_after_conflicts(sleeps):
    op = FlakyOperation(failures=2)
    assert retry_on_conflict(op, max_attempts=3, sleep=sleeps.append) == "done"
    assert op.calls == 3


def test_backoff_doubles(sleeps):
    retry_on_conflict(
        FlakyOperation(failures=2),
        max_attempts=3,
        backoff_seconds=0.1,
        sleep=sleeps.append,
    )
    assert sleeps == [0.1, 0.2]


def test_exhausted_reraises(sleeps, captured_logs):
    op = FlakyOperation(failures=5)
    with pytest.raises(ConcurrentModificationError):
        retry_on_conflict(op, max_attempts=2, sleep=sleeps.append)
    assert op.calls == 2
    assert any(r["message"] == "conflict_retries_exhausted" for r in captured_logs())


def test_zero_backoff_does_not_sleep(sleeps):
    retry_on_conflict(
        FlakyOperation(failures=1), backoff_seconds=0, sleep=sleeps.append
    )
    assert sleeps == []


def test_other_errors_not_retried(sleeps):
    calls = []

    def op():
        calls.append(1)
        raise NoPenaltyToWaiveError("i-1")

    with pytest.raises(NoPenaltyToWaiveError):
        retry_on_conflict(op, max_attempts=3, sleep=sleeps.append)
    assert len(calls) == 1


def test_invalid_attempts():
    with pytest.raises(ValueError):
        retry_on_conflict(lambda: None, max_attempts=0)
