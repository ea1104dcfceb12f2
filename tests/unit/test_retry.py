from __future__ import annotations

import pytest

from xdomain_members.directory.client import DirectoryError
from xdomain_members.services.retry import MAX_DELAY_SECONDS, RetryExecutor, is_retryable


class Flaky:
    """Callable failing ``failures`` times before returning ``value``."""

    def __init__(self, failures: int, message: str = "The server is not operational", value: str = "ok"):
        self.failures = failures
        self.message = message
        self.value = value
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise DirectoryError(self.message)
        return self.value


def test_success_first_attempt_no_sleep(retry_executor, sleep_recorder):
    op = Flaky(0)
    assert retry_executor.execute(op, max_retries=3, initial_delay=5) == "ok"
    assert op.calls == 1
    assert sleep_recorder.delays == []


def test_always_failing_operation_attempted_max_retries_plus_one(retry_executor, sleep_recorder):
    op = Flaky(100)
    with pytest.raises(DirectoryError, match="not operational"):
        retry_executor.execute(op, max_retries=3, initial_delay=5)
    assert op.calls == 4
    # no sleep after the final attempt
    assert sleep_recorder.delays == [5, 5, 5]


def test_recovers_after_transient_failures(retry_executor, sleep_recorder):
    op = Flaky(2)
    assert retry_executor.execute(op, max_retries=3, initial_delay=2) == "ok"
    assert op.calls == 3
    assert sleep_recorder.delays == [2, 2]


def test_exponential_backoff_doubles_delay(retry_executor, sleep_recorder):
    op = Flaky(100)
    with pytest.raises(DirectoryError):
        retry_executor.execute(op, max_retries=4, initial_delay=5, use_exponential_backoff=True)
    assert sleep_recorder.delays == [5, 10, 20, 40]


def test_exponential_backoff_capped(retry_executor, sleep_recorder):
    op = Flaky(100)
    with pytest.raises(DirectoryError):
        retry_executor.execute(op, max_retries=10, initial_delay=60, use_exponential_backoff=True)
    assert sleep_recorder.delays[:4] == [60, 120, 240, MAX_DELAY_SECONDS]
    assert max(sleep_recorder.delays) == MAX_DELAY_SECONDS
    assert len(sleep_recorder.delays) == 10


def test_non_matching_failure_not_retried(retry_executor, sleep_recorder):
    op = Flaky(100, message="Access denied")
    with pytest.raises(DirectoryError, match="Access denied"):
        retry_executor.execute(
            op, max_retries=3, initial_delay=5, retryable_error_patterns=["server is not operational"]
        )
    assert op.calls == 1
    assert sleep_recorder.delays == []


def test_matching_pattern_is_retried(retry_executor):
    op = Flaky(1, message="The RPC server is unavailable")
    result = retry_executor.execute(
        op, max_retries=2, initial_delay=1, retryable_error_patterns=["rpc server"]
    )
    assert result == "ok"
    assert op.calls == 2


def test_last_failure_is_reraised_unchanged(retry_executor):
    class Boom(RuntimeError):
        pass

    def op():
        raise Boom("timed out waiting for controller")

    with pytest.raises(Boom):
        RetryExecutor(sleep=lambda s: None).execute(op, max_retries=1, initial_delay=1)


@pytest.mark.parametrize(
    "message,patterns,expected",
    [
        ("anything", None, True),
        ("anything", [], True),
        ("Operation timed out", ["timed? ?out"], True),
        ("Server BUSY", ["busy"], True),
        ("already a member", ["busy", "timeout"], False),
        # invalid regex falls back to substring match
        ("value (unclosed", ["(unclosed"], True),
        ("value", ["(unclosed"], False),
    ],
)
def test_is_retryable(message, patterns, expected):
    assert is_retryable(message, patterns) is expected
