"""
Taxonomia de Erros
==================

Erros classificados levantados pelos adaptadores de fonte e pelo executor
de resiliência.
"""

from typing import Optional


class SourceError(Exception):
    """Falha genérica ao consultar uma fonte externa."""

    def __init__(self, message: str, source: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class TransientSourceError(SourceError):
    """Timeout, conexão recusada, 5xx."""


class RateLimitedError(SourceError):
    """HTTP 429 / limite de requisições da fonte."""

    def __init__(self, message: str, source: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message, source=source, status_code=429)
        self.retry_after = retry_after


class PermanentSourceError(SourceError):
    """Requisição inválida ou recurso inexistente (400/404). Nunca é repetida."""


class CircuitOpenError(Exception):
    """Circuit breaker aberto: a chamada nem chegou a ser executada."""

    def __init__(self, name: str, retry_in: float):
        super().__init__(f"Circuit breaker '{name}' ABERTO - nova tentativa em {retry_in:.0f}s")
        self.name = name
        self.retry_in = retry_in


class RetryExhaustedError(Exception):
    """Todas as tentativas falharam."""

    def __init__(self, context: str, attempts: int, last_error: BaseException):
        super().__init__(f"{context} falhou após {attempts} tentativas: {last_error}")
        self.context = context
        self.attempts = attempts
        self.last_error = last_error


class NormalizationError(ValueError):
    """Registro bruto sem os campos mínimos para virar um CanonicalCase."""


def describe_error(error: BaseException) -> str:
    """Representação curta usada em SourceResult.error e nos logs de sync."""
    message = str(error) or error.__class__.__name__
    return f"{type(error).__name__}: {message}"
