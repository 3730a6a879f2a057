"""
tests/test_tasks.py

Orquestrador de sync: estados terminais, paginação, cota, log diário e
códigos de saída do cron.
"""

import asyncio
import threading

import pytest

import cron_sync_tribunal
from errors import PermanentSourceError
from quota import QuotaTracker
from schemas import SyncLogEntry, SyncStatus
from storage import CASES_COLLECTION, SYNC_LOGS_COLLECTION
from tasks import get_sync_log, get_sync_stats, run_tribunal_sync
from tests.helpers import TJMG_NUMBER, TJSP_NUMBER, FakeAdapter, MemoryDocumentStore, scraped_record
from utils import today_key, utcnow

PAGE = [scraped_record(numero=TJSP_NUMBER), scraped_record(numero=TJMG_NUMBER)]


class GatedStore(MemoryDocumentStore):
    """A primeira escrita de processo espera o event loop liberar o portão."""

    def __init__(self):
        super().__init__()
        self.waiting = threading.Event()
        self.gate = threading.Event()
        self.released_in_time = None

    def set_merge(self, collection, key, fields):
        if collection == CASES_COLLECTION and self.released_in_time is None:
            self.waiting.set()
            self.released_in_time = self.gate.wait(timeout=2)
        super().set_merge(collection, key, fields)


async def sync(adapter, store, executor, sleeper, budget=20_000, **kwargs) -> SyncLogEntry:
    return await run_tribunal_sync(
        "tjsp",
        adapter=adapter,
        executor=executor,
        store=store,
        quota_tracker=QuotaTracker(store, budget=budget),
        max_pages=kwargs.pop("max_pages", 3),
        page_size=kwargs.pop("page_size", 100),
        page_delay=kwargs.pop("page_delay", 0.5),
        sleep=sleeper,
    )

# =============================================================================
# Estados terminais
# =============================================================================


class TestTerminalStates:
    @pytest.mark.asyncio
    async def test_success_writes_cases_and_log(self, store, executor, sleeper) -> None:
        adapter = FakeAdapter("mock", pages=[PAGE])

        result = await sync(adapter, store, executor, sleeper)

        assert result.status == SyncStatus.SUCCESS
        assert result.tribunal == "TJSP"
        assert (result.total_fetched, result.new, result.total_written) == (2, 2, 2)
        assert store.writes_to(CASES_COLLECTION) == 2
        log = get_sync_log(store)["TJSP"]
        assert (log["success"], log["runs"], log["last_status"]) == (2, 1, "success")

    @pytest.mark.asyncio
    async def test_storage_writes_do_not_block_event_loop(self, executor, sleeper) -> None:
        store = GatedStore()

        async def release_gate():
            while not store.waiting.wait(timeout=0):
                await asyncio.sleep(0.01)
            store.gate.set()

        result, _ = await asyncio.wait_for(
            asyncio.gather(sync(FakeAdapter("mock", pages=[PAGE]), store, executor, sleeper), release_gate()),
            timeout=5
        )

        assert result.status == SyncStatus.SUCCESS
        assert store.released_in_time is True

    @pytest.mark.asyncio
    async def test_stops_at_first_empty_page_with_delay_between_pages(self, store, executor, sleeper) -> None:
        adapter = FakeAdapter("mock", pages=[PAGE, [scraped_record(numero="1" * 20)]])

        result = await sync(adapter, store, executor, sleeper, max_pages=5)

        assert adapter.page_calls == [0, 1, 2]
        assert sleeper.calls == [0.5, 0.5]
        assert result.total_fetched == 3

    @pytest.mark.asyncio
    async def test_no_data(self, store, executor, sleeper) -> None:
        adapter = FakeAdapter("mock", pages=[])

        result = await sync(adapter, store, executor, sleeper)

        assert result.status == SyncStatus.NO_DATA
        assert store.writes_to(CASES_COLLECTION) == 0
        assert get_sync_log(store)["TJSP"]["last_status"] == "no_data"

    @pytest.mark.asyncio
    async def test_source_failure_ends_in_error_with_log(self, store, executor, sleeper) -> None:
        adapter = FakeAdapter("datajud", error=PermanentSourceError("HTTP 404"))

        result = await sync(adapter, store, executor, sleeper)

        assert result.status == SyncStatus.ERROR
        assert result.errors[0]["stage"] == "sync"
        log = get_sync_log(store)["TJSP"]
        assert (log["last_status"], log["failed"], log["runs"]) == ("error", 1, 1)

    @pytest.mark.asyncio
    async def test_exactly_one_log_merge_per_run(self, store, executor, sleeper) -> None:
        for adapter in (FakeAdapter("mock", pages=[PAGE]), FakeAdapter("mock"), FakeAdapter("mock", error=RuntimeError("x"))):
            before = store.writes_to(SYNC_LOGS_COLLECTION)
            await sync(adapter, store, executor, sleeper)
            assert store.writes_to(SYNC_LOGS_COLLECTION) == before + 1

    @pytest.mark.asyncio
    async def test_second_run_with_same_content_skips_writes(self, store, executor, sleeper) -> None:
        await sync(FakeAdapter("mock", pages=[PAGE]), store, executor, sleeper)
        result = await sync(FakeAdapter("mock", pages=[PAGE]), store, executor, sleeper)

        assert (result.total_written, result.skipped) == (0, 2)
        assert get_sync_log(store)["TJSP"]["runs"] == 2

    @pytest.mark.asyncio
    async def test_normalization_failure_is_recorded_per_item(self, store, executor, sleeper) -> None:
        adapter = FakeAdapter("mock", pages=[[scraped_record(numero=TJSP_NUMBER), scraped_record(numero=None)]])

        result = await sync(adapter, store, executor, sleeper)

        assert result.status == SyncStatus.SUCCESS
        assert result.new == 1
        assert [e["stage"] for e in result.errors] == ["normalize"]

# =============================================================================
# Cota
# =============================================================================


class TestQuotaGate:
    @pytest.mark.asyncio
    async def test_exceeded_quota_stops_before_fetch(self, store, executor, sleeper) -> None:
        store.docs[(SYNC_LOGS_COLLECTION, today_key())] = {"TJMG": {"success": 20_000, "updated": 0}}
        adapter = FakeAdapter("mock", pages=[PAGE])

        result = await sync(adapter, store, executor, sleeper)

        assert result.status == SyncStatus.ERROR
        assert result.errors[0]["reason"] == "quota_exceeded"
        assert adapter.calls == 0
        assert get_sync_log(store)["TJSP"]["runs"] == 1

    @pytest.mark.asyncio
    async def test_remaining_budget_limits_writes(self, store, executor, sleeper) -> None:
        store.docs[(SYNC_LOGS_COLLECTION, today_key())] = {"TJMG": {"success": 9, "updated": 0}}
        adapter = FakeAdapter("mock", pages=[PAGE])

        result = await sync(adapter, store, executor, sleeper, budget=10)

        assert result.status == SyncStatus.SUCCESS
        assert (result.new, result.deferred) == (1, 1)

# =============================================================================
# Estatísticas / cron
# =============================================================================


class TestStatsAndCron:
    @pytest.mark.asyncio
    async def test_sync_stats_aggregate_tribunals(self, store, executor, sleeper) -> None:
        await sync(FakeAdapter("mock", pages=[PAGE]), store, executor, sleeper)
        store.set_merge(SYNC_LOGS_COLLECTION, today_key(), {"TJMG": {"success": 3, "updated": 1, "runs": 1, "last_status": "error"}})

        stats = get_sync_stats(store)

        assert stats["tribunals"] == ["TJMG", "TJSP"]
        assert stats["total_writes"] == 6
        assert stats["total_runs"] == 2
        assert stats["tribunals_with_errors"] == ["TJMG"]

    @pytest.mark.parametrize(
        "status, code",
        [(SyncStatus.SUCCESS, 0), (SyncStatus.NO_DATA, 0), (SyncStatus.ERROR, 1), (SyncStatus.PENDING, 1)],
    )
    def test_exit_codes(self, status: SyncStatus, code: int) -> None:
        assert cron_sync_tribunal.exit_code_for(status) == code

    def test_cron_main_returns_exit_code(self, monkeypatch) -> None:
        async def fake_sync(tribunal):
            return SyncLogEntry(
                log_date=today_key(), tribunal=tribunal, status=SyncStatus.ERROR,
                started_at=utcnow(), errors=[{"error": "falhou"}]
            )

        monkeypatch.setattr(cron_sync_tribunal, "sync_tribunal", fake_sync)

        assert cron_sync_tribunal.main(["tjsp"]) == 1

    def test_cron_main_requires_tribunal(self) -> None:
        assert cron_sync_tribunal.main([]) == 2
