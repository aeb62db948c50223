"""Tests del RetryExecutor.

Ejecutar:
    pytest tests/test_retry.py -v
"""

import threading

import pytest

from airflow_collector.errors import (
    AuthenticationError,
    RetryCancelled,
    RetryExhausted,
    TransientError,
)
from airflow_collector.resilience.retry import RetryExecutor, RetryPolicy, is_transient_default
from conftest import RecordingCancel


class Flaky:
    """Falla `failures` veces con `error` y luego devuelve `result`."""

    def __init__(self, failures: int, error: Exception = None, result="ok"):
        self.failures = failures
        self.error = error or TransientError("boom")
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


# =============================================================================
# POLÍTICA
# =============================================================================

class TestRetryPolicy:

    def test_defaults(self):
        p = RetryPolicy()
        assert p.max_attempts == 3
        assert p.initial_interval == 1.0
        assert p.max_interval == 10.0
        assert p.multiplier == 2.0

    def test_delay_schedule(self):
        p = RetryPolicy(max_attempts=6, initial_interval=1.0, max_interval=10.0, multiplier=2.0)
        assert [p.calculate_delay(k) for k in range(1, 7)] == [0.0, 1.0, 2.0, 4.0, 8.0, 10.0]

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(multiplier=0.5)


# =============================================================================
# EJECUCIÓN
# =============================================================================

class TestRetryExecutor:

    def test_first_attempt_success_does_not_wait(self, recording_cancel):
        fn = Flaky(0)
        assert RetryExecutor().execute("op", fn, cancel=recording_cancel) == "ok"
        assert fn.calls == 1
        assert recording_cancel.waits == []

    def test_recovers_after_transient_failures(self, recording_cancel):
        fn = Flaky(2)
        assert RetryExecutor().execute("op", fn, cancel=recording_cancel) == "ok"
        assert fn.calls == 3
        assert recording_cancel.waits == [1.0, 2.0]

    def test_exhausted_after_three_attempts(self, recording_cancel):
        """3 intentos fallidos → RetryExhausted encadenado al último error."""
        err = TransientError("always")
        fn = Flaky(10, error=err)

        with pytest.raises(RetryExhausted) as exc_info:
            RetryExecutor().execute("op", fn, cancel=recording_cancel)

        assert fn.calls == 3
        assert recording_cancel.waits == [1.0, 2.0]
        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is err

    def test_waits_capped_at_max_interval(self, recording_cancel):
        policy = RetryPolicy(max_attempts=5, initial_interval=4.0, max_interval=10.0)
        with pytest.raises(RetryExhausted):
            RetryExecutor(policy).execute("op", Flaky(10), cancel=recording_cancel)
        assert recording_cancel.waits == [4.0, 8.0, 10.0, 10.0]

    def test_non_transient_is_not_retried(self, recording_cancel):
        """401 → un único intento y se propaga el error original."""
        fn = Flaky(10, error=AuthenticationError(401, "/api/v1/dags"))

        with pytest.raises(AuthenticationError):
            RetryExecutor().execute("op", fn, cancel=recording_cancel)

        assert fn.calls == 1
        assert recording_cancel.waits == []

    def test_custom_classifier(self, recording_cancel):
        fn = Flaky(10, error=KeyError("x"))
        with pytest.raises(KeyError):
            RetryExecutor().execute(
                "op", fn, cancel=recording_cancel, is_transient=lambda e: not isinstance(e, KeyError),
            )
        assert fn.calls == 1

    def test_default_classifier(self):
        assert is_transient_default(TransientError("x")) is True
        assert is_transient_default(ValueError("x")) is True
        assert is_transient_default(AuthenticationError(403)) is False


# =============================================================================
# CANCELACIÓN
# =============================================================================

class TestRetryCancellation:

    def test_cancel_during_wait_raises_cancelled(self):
        """La cancelación durante el backoff gana sobre el error de la operación."""
        cancel = RecordingCancel(set_after=0)
        fn = Flaky(10)

        with pytest.raises(RetryCancelled) as exc_info:
            RetryExecutor().execute("op", fn, cancel=cancel)

        assert fn.calls == 1
        assert exc_info.value.attempt == 2

    def test_real_event_interrupts_long_backoff(self):
        """Un Event real corta una espera de 10s casi al instante."""
        policy = RetryPolicy(max_attempts=3, initial_interval=10.0, max_interval=10.0)
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            with pytest.raises(RetryCancelled):
                RetryExecutor(policy).execute("op", Flaky(10), cancel=cancel)
        finally:
            timer.cancel()

    def test_already_cancelled_skips_retry(self):
        cancel = threading.Event()
        cancel.set()
        fn = Flaky(10)
        with pytest.raises(RetryCancelled):
            RetryExecutor().execute("op", fn, cancel=cancel)
        assert fn.calls == 1
