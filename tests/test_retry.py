import pytest

from device_agent.core.cancellation import CancellationToken
from device_agent.core.config import RetryConfig
from device_agent.core.errors import CancelledError, CaptureError, ConfigurationError
from device_agent.core.retry import (PHASE_EXECUTE, PHASE_MODEL, PHASE_SCREENSHOT,
                                     RetryBudget, RetryPolicy, with_retry)


class Flaky:
    def __init__(self, failures, error=CaptureError):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


@pytest.mark.parametrize("k", [1, 3, 5])
def test_always_failing_operation_is_attempted_k_times(k):
    op = Flaky(failures=100)
    budget = RetryBudget("screenshot", k)
    with pytest.raises(CaptureError) as exc:
        with_retry(budget, op)
    assert op.calls == k
    assert budget.attempts_used == k
    assert str(exc.value) == f"failure {k}"


@pytest.mark.parametrize("j", [1, 2, 3])
def test_success_on_attempt_j_uses_j_attempts(j):
    op = Flaky(failures=j - 1)
    budget = RetryBudget("model", 3)
    assert with_retry(budget, op) == "ok"
    assert op.calls == j
    assert budget.attempts_used == j


def test_counter_restarts_on_every_call():
    budget = RetryBudget("execute", 2)
    with pytest.raises(CaptureError):
        with_retry(budget, Flaky(failures=100))
    assert with_retry(budget, Flaky(failures=1)) == "ok"
    assert budget.attempts_used == 2


def test_cancellation_checked_before_each_attempt():
    token = CancellationToken()
    calls = []

    def op():
        calls.append(1)
        token.cancel()
        raise CaptureError("boom")

    with pytest.raises(CancelledError):
        with_retry(RetryBudget("screenshot", 5), op, token)
    assert len(calls) == 1


def test_cancelled_token_prevents_any_attempt():
    token = CancellationToken()
    token.cancel()
    op = Flaky(failures=0)
    with pytest.raises(CancelledError):
        with_retry(RetryBudget("model", 3), op, token)
    assert op.calls == 0


def test_non_retryable_errors_are_raised_immediately():
    op = Flaky(failures=100, error=lambda msg: ConfigurationError(msg, action_type="type"))
    with pytest.raises(ConfigurationError):
        with_retry(RetryBudget("execute", 4), op)
    assert op.calls == 1


def test_cancelled_error_from_operation_is_not_retried():
    op = Flaky(failures=100, error=CancelledError)
    with pytest.raises(CancelledError):
        with_retry(RetryBudget("model", 4), op)
    assert op.calls == 1


def test_budget_requires_at_least_one_attempt():
    with pytest.raises(ValueError):
        RetryBudget("model", 0)


def test_policy_hands_out_fresh_budgets():
    policy = RetryPolicy.from_config(RetryConfig())
    first, second = policy.new_budgets(), policy.new_budgets()
    assert {p: b.max_attempts for p, b in first.items()} == {
        PHASE_MODEL: 3, PHASE_SCREENSHOT: 5, PHASE_EXECUTE: 1,
    }
    first[PHASE_MODEL].attempts_used = 2
    assert second[PHASE_MODEL].attempts_used == 0
