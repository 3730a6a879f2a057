"""
tests/test_resilience.py

Classificação de erros, política de retry e transições do circuit breaker.
"""

import asyncio

import httpx
import pytest

from errors import (
    CircuitOpenError,
    PermanentSourceError,
    RateLimitedError,
    RetryExhaustedError,
    TransientSourceError,
)
from resilience import CircuitBreaker, CircuitState, ErrorKind, classify_error
from tests.helpers import FakeClock


class StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def failing(errors, result="ok"):
    """Corrotina que levanta os erros em ordem e depois devolve `result`."""
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        if errors:
            raise errors.pop(0)
        return result

    return fn, calls

# ═══════════════════════════════════════════════════════════════════════════
# CLASSIFICAÇÃO
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "error, kind",
    [
        (RateLimitedError("429"), ErrorKind.RATE_LIMITED),
        (StatusError(429), ErrorKind.RATE_LIMITED),
        (TransientSourceError("503"), ErrorKind.TRANSIENT),
        (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
        (ConnectionRefusedError(), ErrorKind.TRANSIENT),
        (httpx.ConnectTimeout("timeout"), ErrorKind.TRANSIENT),
        (PermanentSourceError("404"), ErrorKind.PERMANENT),
        (StatusError(400), ErrorKind.PERMANENT),
        (StatusError(404), ErrorKind.PERMANENT),
        (CircuitOpenError("datajud", 10), ErrorKind.PERMANENT),
        (ValueError("inesperado"), ErrorKind.UNCLASSIFIED),
        (StatusError(500), ErrorKind.UNCLASSIFIED),
    ],
)
def test_classify_error(error: Exception, kind: ErrorKind) -> None:
    assert classify_error(error) == kind

# ═══════════════════════════════════════════════════════════════════════════
# RETRY
# ═══════════════════════════════════════════════════════════════════════════


class TestRetry:
    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, executor, sleeper) -> None:
        fn, calls = failing([])
        assert await executor.run(fn, context="fonte") == "ok"
        assert calls["n"] == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_transient_errors_follow_delay_schedule(self, executor, sleeper) -> None:
        fn, calls = failing([TransientSourceError("timeout"), ConnectionRefusedError()])
        assert await executor.run(fn, context="fonte") == "ok"
        assert calls["n"] == 3
        assert sleeper.calls == [1.0, 5.0]

    @pytest.mark.asyncio
    async def test_unclassified_errors_are_retried(self, executor, sleeper) -> None:
        fn, calls = failing([ValueError("estranho")])
        assert await executor.run(fn, context="fonte") == "ok"
        assert sleeper.calls == [1.0]

    @pytest.mark.asyncio
    async def test_permanent_error_fails_immediately(self, executor, sleeper) -> None:
        fn, calls = failing([PermanentSourceError("404")])
        with pytest.raises(PermanentSourceError):
            await executor.run(fn, context="fonte")
        assert calls["n"] == 1
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error_and_attempts(self, executor, sleeper) -> None:
        last = TransientSourceError("terceira")
        fn, calls = failing([TransientSourceError("1"), TransientSourceError("2"), last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await executor.run(fn, context="fonte")

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert calls["n"] == 3
        assert sleeper.calls == [1.0, 5.0]

    @pytest.mark.asyncio
    async def test_rate_limit_waits_cooldown_without_using_attempts(self, executor, sleeper) -> None:
        fn, calls = failing([
            RateLimitedError("429"),
            RateLimitedError("429"),
            TransientSourceError("1"),
            TransientSourceError("2"),
        ])

        assert await executor.run(fn, context="fonte") == "ok"
        assert calls["n"] == 5
        assert sleeper.calls == [60.0, 60.0, 1.0, 5.0]

    @pytest.mark.asyncio
    async def test_rate_limit_respects_longer_retry_after(self, executor, sleeper) -> None:
        fn, _ = failing([RateLimitedError("429", retry_after=120)])
        await executor.run(fn, context="fonte")
        assert sleeper.calls == [120]

    @pytest.mark.asyncio
    async def test_call_timeout_is_transient(self, executor) -> None:
        executor.call_timeout = 0.01

        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await executor.run(slow, context="lenta")
        assert isinstance(exc_info.value.last_error, asyncio.TimeoutError)

    def test_run_sync_retries_storage_errors(self, executor, sleeper) -> None:
        errors = [ConnectionError("banco fora")]

        def read():
            if errors:
                raise errors.pop(0)
            return 42

        assert executor.run_sync(read, context="storage") == 42
        assert sleeper.calls == [1.0]

# ═══════════════════════════════════════════════════════════════════════════
# CIRCUIT BREAKER
# ═══════════════════════════════════════════════════════════════════════════


class TestCircuitBreaker:
    def _open(self, breaker: CircuitBreaker, failures: int = 5) -> None:
        for _ in range(failures):
            with pytest.raises(TransientSourceError):
                breaker.call_sync(self._boom)

    @staticmethod
    def _boom():
        raise TransientSourceError("falha")

    def test_opens_after_threshold_and_short_circuits(self) -> None:
        breaker = CircuitBreaker("datajud", failure_threshold=5, reset_timeout=300, clock=FakeClock())
        self._open(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

        self._open(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        invoked = []
        with pytest.raises(CircuitOpenError):
            breaker.call_sync(lambda: invoked.append(1))
        assert invoked == []

    def test_half_open_success_closes_and_resets_counter(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("datajud", failure_threshold=5, reset_timeout=300, clock=clock)
        self._open(breaker)

        clock.advance(299)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN

        assert breaker.call_sync(lambda: "ok") == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 0

    def test_half_open_allows_exactly_one_trial(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("datajud", failure_threshold=5, reset_timeout=300, clock=clock)
        self._open(breaker)
        clock.advance(300)

        breaker.before_call()
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_half_open_failure_reopens_and_restarts_timeout(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("datajud", failure_threshold=5, reset_timeout=300, clock=clock)
        self._open(breaker)
        clock.advance(300)

        self._open(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        clock.advance(299)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_success_resets_consecutive_failures(self) -> None:
        breaker = CircuitBreaker("datajud", failure_threshold=5, reset_timeout=300, clock=FakeClock())
        self._open(breaker, 4)
        breaker.call_sync(lambda: None)
        self._open(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

    def test_permanent_errors_do_not_open_breaker(self) -> None:
        breaker = CircuitBreaker("datajud", failure_threshold=2, reset_timeout=300, clock=FakeClock())

        def not_found():
            raise PermanentSourceError("404")

        for _ in range(3):
            with pytest.raises(PermanentSourceError):
                breaker.call_sync(not_found)
        assert breaker.state == CircuitState.CLOSED

    def test_permanent_status_codes_do_not_open_breaker(self) -> None:
        breaker = CircuitBreaker("datajud", failure_threshold=2, reset_timeout=300, clock=FakeClock())
        response = httpx.Response(404, request=httpx.Request("GET", "https://datajud.example/api"))

        def not_found():
            raise httpx.HTTPStatusError("404", request=response.request, response=response)

        for _ in range(3):
            with pytest.raises(httpx.HTTPStatusError):
                breaker.call_sync(not_found)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 0

    @pytest.mark.asyncio
    async def test_cancelled_trial_reopens_instead_of_blocking(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker("esaj", failure_threshold=5, reset_timeout=300, clock=clock)
        self._open(breaker)
        clock.advance(300)
        assert breaker.state == CircuitState.HALF_OPEN

        async def hangs():
            await asyncio.sleep(10)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(breaker.call(hangs), timeout=0.01)
        assert breaker.state == CircuitState.OPEN

        clock.advance(300)
        fn, calls = failing([])
        assert await breaker.call(fn) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_executor_does_not_retry_open_circuit(self, executor, clock) -> None:
        breaker = executor.breaker("datajud")
        self._open(breaker)

        fn, calls = failing([])
        with pytest.raises(CircuitOpenError):
            await executor.run(fn, context="datajud")
        assert calls["n"] == 0

    @pytest.mark.asyncio
    async def test_breakers_are_isolated_per_context(self, executor) -> None:
        self._open(executor.breaker("jusbrasil"))

        fn, _ = failing([])
        assert await executor.run(fn, context="datajud") == "ok"
