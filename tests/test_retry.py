"""Tests for the retry executor and backoff strategy."""

import pytest

from pdum.provision.retry import RetryExecutor, RetryPolicy, linear_backoff
from pdum.provision.types.exceptions import ControlPlaneError, OperatorAbort


class Flaky:
    def __init__(self, failures: int, error: BaseException = None):
        self.failures = failures
        self.error = error or ControlPlaneError("boom")
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "done"


def test_linear_backoff_without_jitter():
    delay = linear_backoff(step=5.0, max_jitter=0)
    assert [delay(n) for n in (1, 2, 3)] == [5.0, 10.0, 15.0]


def test_linear_backoff_jitter_is_bounded():
    delay = linear_backoff(step=1.0, max_jitter=2.0)
    for _ in range(50):
        assert 3.0 <= delay(3) <= 5.0


def test_success_on_first_attempt(retry):
    op = Flaky(0)
    assert retry.execute(op) == "done"
    assert op.calls == 1


def test_retries_until_success(retry):
    op = Flaky(2)
    assert retry.execute(op) == "done"
    assert op.calls == 3


def test_last_error_is_returned_unchanged(retry):
    error = ControlPlaneError("still broken")
    op = Flaky(10, error)
    with pytest.raises(ControlPlaneError) as excinfo:
        retry.execute(op)
    assert excinfo.value is error
    assert op.calls == 3


def test_max_attempts_override(retry):
    op = Flaky(10)
    with pytest.raises(ControlPlaneError):
        retry.execute(op, max_attempts=1)
    assert op.calls == 1


def test_backoff_fn_called_with_attempt_numbers(logger):
    seen = []

    def backoff_fn(attempt):
        seen.append(attempt)
        return 0.0

    executor = RetryExecutor(RetryPolicy(max_attempts=4), logger=logger)
    with pytest.raises(ControlPlaneError):
        executor.execute(Flaky(10), backoff_fn=backoff_fn)
    # No wait after the final attempt
    assert seen == [1, 2, 3]


def test_operator_abort_is_not_retried(retry):
    op = Flaky(10, OperatorAbort("ctrl-c"))
    with pytest.raises(OperatorAbort):
        retry.execute(op)
    assert op.calls == 1


@pytest.mark.parametrize("error", [KeyboardInterrupt(), BrokenPipeError()])
def test_interrupt_signals_become_operator_abort(retry, error):
    op = Flaky(10, error)
    with pytest.raises(OperatorAbort):
        retry.execute(op)
    assert op.calls == 1


def test_retries_are_logged(retry, log_buffer):
    retry.execute(Flaky(1), description="enable svc-a")
    output = log_buffer.getvalue()
    assert "Retry 1/3 for enable svc-a" in output


def test_invalid_attempt_counts(retry):
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        retry.execute(lambda: None, max_attempts=0)
