"""
Resiliência: Retry com Backoff + Circuit Breaker
=================================================

Toda chamada externa (fontes e armazenamento) passa pelo `ResilienceExecutor`:

- rate limit (429): aguarda um cooldown longo e tenta de novo sem gastar tentativa
- falha transitória (timeout, conexão recusada): 1s, 5s, 30s
- erro permanente (400/404): falha imediatamente
- demais erros: mesmo cronograma das transitórias

Cada ponto de chamada tem seu próprio circuit breaker (CLOSED -> OPEN -> HALF_OPEN).
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Sequence, TypeVar

import httpx
from sqlalchemy.exc import OperationalError

from config import settings
from errors import (
    CircuitOpenError,
    PermanentSourceError,
    RateLimitedError,
    RetryExhaustedError,
    TransientSourceError,
)
from logger import logger

T = TypeVar("T")

PERMANENT_STATUS_CODES = frozenset({400, 404})


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNCLASSIFIED = "unclassified"


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status


def classify_error(error: BaseException) -> ErrorKind:
    """Classifica uma exceção para decidir a política de retry."""
    if isinstance(error, (CircuitOpenError, PermanentSourceError)):
        return ErrorKind.PERMANENT
    if isinstance(error, RateLimitedError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, (
        TransientSourceError,
        asyncio.TimeoutError,
        TimeoutError,
        ConnectionError,
        httpx.TimeoutException,
        httpx.NetworkError,
        OperationalError,
    )):
        return ErrorKind.TRANSIENT

    status = _status_code(error)
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status in PERMANENT_STATUS_CODES:
        return ErrorKind.PERMANENT
    return ErrorKind.UNCLASSIFIED


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Circuit breaker de 3 estados para um ponto de chamada.

    - CLOSED: chamadas passam; falhas consecutivas incrementam o contador
    - OPEN: chamadas falham na hora, sem executar a função
    - HALF_OPEN: após `reset_timeout`, exatamente uma chamada de teste é liberada
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self.failures = 0
        self.opened_at: Optional[float] = None
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.clock() - self.opened_at >= self.reset_timeout:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
        return self._state

    def before_call(self):
        state = self.state
        if state == CircuitState.OPEN:
            retry_in = self.reset_timeout - (self.clock() - self.opened_at)
            raise CircuitOpenError(self.name, retry_in)
        if state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(self.name, 0)
            self._trial_in_flight = True

    def record_success(self):
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"🟢 Circuit breaker '{self.name}' FECHADO após chamada de teste")
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.opened_at = None
        self._trial_in_flight = False

    def record_failure(self):
        self.failures += 1
        if self._state == CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self.opened_at = self.clock()
            self._trial_in_flight = False
            logger.error(f"🔴 Circuit breaker '{self.name}' ABERTO após {self.failures} falhas")

    def _settle(self, error: Optional[BaseException]):
        if error is None:
            self.record_success()
        elif classify_error(error) == ErrorKind.PERMANENT:
            # Erro do cliente: a dependência respondeu, não conta como falha dela
            if self._state == CircuitState.HALF_OPEN:
                self.record_success()
        else:
            self.record_failure()

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        self.before_call()
        try:
            result = await fn()
        except asyncio.CancelledError:
            # Cancelada por prazo externo: conta como falha e libera a chamada de teste
            self.record_failure()
            raise
        except Exception as e:
            self._settle(e)
            raise
        self._settle(None)
        return result

    def call_sync(self, fn: Callable[[], T]) -> T:
        self.before_call()
        try:
            result = fn()
        except Exception as e:
            self._settle(e)
            raise
        self._settle(None)
        return result


class ResilienceExecutor:
    """
    Executa unidades de trabalho com retry classificado e circuit breaker.

    Uma instância é compartilhada entre as fontes de uma mesma busca/sync;
    os breakers são separados por `context` (nome da fonte ou operação).
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        delays: Optional[Sequence[float]] = None,
        rate_limit_cooldown: Optional[float] = None,
        rate_limit_max_waits: Optional[int] = None,
        call_timeout: Optional[float] = None,
        failure_threshold: Optional[int] = None,
        reset_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        sync_sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_attempts = max_attempts or settings.RETRY_MAX_ATTEMPTS
        self.delays = tuple(delays if delays is not None else settings.RETRY_DELAYS_SECONDS)
        self.rate_limit_cooldown = (
            settings.RATE_LIMIT_COOLDOWN_SECONDS if rate_limit_cooldown is None else rate_limit_cooldown
        )
        self.rate_limit_max_waits = (
            settings.RATE_LIMIT_MAX_WAITS if rate_limit_max_waits is None else rate_limit_max_waits
        )
        self.call_timeout = settings.CALL_TIMEOUT_SECONDS if call_timeout is None else call_timeout
        self.failure_threshold = failure_threshold or settings.CIRCUIT_FAILURE_THRESHOLD
        self.reset_timeout = settings.CIRCUIT_RESET_TIMEOUT_SECONDS if reset_timeout is None else reset_timeout
        self.sleep = sleep
        self.sync_sleep = sync_sleep
        self.clock = clock
        self.breakers: Dict[str, CircuitBreaker] = {}

    def breaker(self, name: str) -> CircuitBreaker:
        if name not in self.breakers:
            self.breakers[name] = CircuitBreaker(
                name,
                failure_threshold=self.failure_threshold,
                reset_timeout=self.reset_timeout,
                clock=self.clock
            )
        return self.breakers[name]

    def _delay_for(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt - 1, len(self.delays) - 1)]

    def _plan_retry(self, error: Exception, context: str, attempt: int, rate_limit_waits: int):
        """
        Decide o que fazer após uma falha.

        Returns:
            (delay, consome_tentativa); delay None significa que acabaram as tentativas.
            Erros permanentes são relançados aqui mesmo.
        """
        kind = classify_error(error)

        if kind == ErrorKind.PERMANENT:
            logger.error(f"❌ {context} - erro permanente: {error}")
            raise error

        if kind == ErrorKind.RATE_LIMITED and rate_limit_waits < self.rate_limit_max_waits:
            retry_after = getattr(error, "retry_after", None) or 0
            wait = max(self.rate_limit_cooldown, retry_after)
            logger.warning(f"⏸️ {context} - rate limit. Aguardando {wait}s...")
            return wait, False

        if attempt >= self.max_attempts:
            return None, True

        delay = self._delay_for(attempt)
        logger.warning(f"⏳ {context} falhou ({kind.value}): {error}. Nova tentativa em {delay}s")
        return delay, True

    async def run(self, fn: Callable[[], Awaitable[T]], context: str = "operation") -> T:
        """Executa `fn` (corrotina sem argumentos) com timeout, retry e circuit breaker."""
        breaker = self.breaker(context)
        attempt = 0
        rate_limit_waits = 0
        last_error: Optional[Exception] = None

        async def _attempt():
            if self.call_timeout:
                return await asyncio.wait_for(fn(), timeout=self.call_timeout)
            return await fn()

        while attempt < self.max_attempts:
            attempt += 1
            logger.debug(f"🔄 {context} - tentativa {attempt}/{self.max_attempts}")
            try:
                return await breaker.call(_attempt)
            except Exception as e:
                last_error = e
                delay, counted = self._plan_retry(e, context, attempt, rate_limit_waits)
                if not counted:
                    attempt -= 1
                    rate_limit_waits += 1
                if delay is None:
                    break
                await self.sleep(delay)

        raise RetryExhaustedError(context, attempt, last_error)

    def run_sync(self, fn: Callable[[], T], context: str = "operation") -> T:
        """Versão bloqueante de `run`, usada nas chamadas ao armazenamento."""
        breaker = self.breaker(context)
        attempt = 0
        rate_limit_waits = 0
        last_error: Optional[Exception] = None

        while attempt < self.max_attempts:
            attempt += 1
            try:
                return breaker.call_sync(fn)
            except Exception as e:
                last_error = e
                delay, counted = self._plan_retry(e, context, attempt, rate_limit_waits)
                if not counted:
                    attempt -= 1
                    rate_limit_waits += 1
                if delay is None:
                    break
                self.sync_sleep(delay)

        raise RetryExhaustedError(context, attempt, last_error)
