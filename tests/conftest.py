"""
tests/conftest.py

Configuração do pytest e fixtures compartilhadas.

O banco padrão é SQLite em memória: `app` e `tasks` criam as tabelas na
importação e nenhum teste deve tocar o arquivo judsync.db.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest

from resilience import ResilienceExecutor
from tests.helpers import FakeClock, MemoryDocumentStore, SleepRecorder


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def executor(sleeper: SleepRecorder, clock: FakeClock) -> ResilienceExecutor:
    """Executor com a política padrão (1s, 5s, 30s / 60s) sem dormir de verdade."""
    return ResilienceExecutor(
        max_attempts=3,
        delays=(1.0, 5.0, 30.0),
        rate_limit_cooldown=60.0,
        rate_limit_max_waits=3,
        call_timeout=5.0,
        failure_threshold=5,
        reset_timeout=300.0,
        sleep=sleeper,
        sync_sleep=sleeper.sync,
        clock=clock
    )
