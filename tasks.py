"""
Sync Incremental por Tribunal
=============================

Máquina de estados de uma execução:

    pending -> (fetch) -> (normalize) -> (write) -> success | no_data | error

- Consulta a cota antes de tudo: EXCEEDED encerra em `error` (quota_exceeded)
- Busca paginada na fonte oficial, com pausa entre páginas; para na primeira página vazia
- Falhas de normalização e de escrita são registradas por item, sem abortar
- Qualquer exceção não tratada leva a `error`
- Toda execução grava exatamente UM merge no log diário (bloco finally)
- Acesso ao armazenamento roda em thread (asyncio.to_thread), sem travar o event loop
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from adapter_base import SourceAdapter
from change_detection import batch_write_if_changed
from config import settings
from errors import describe_error
from logger import log_error, log_sync_finished, logger
from normalizer import normalize_record
from quota import QuotaTracker, read_sync_log, record_log_entry
from resilience import ResilienceExecutor
from schemas import CanonicalCase, QuotaLevel, SyncLogEntry, SyncStatus
from storage import DocumentStore, SqlDocumentStore
from utils import today_key, utcnow


async def _fetch_pages(
    tribunal: str,
    adapter: SourceAdapter,
    executor: ResilienceExecutor,
    max_pages: int,
    page_size: int,
    page_delay: float,
    sleep: Callable[[float], Awaitable[None]]
) -> list:
    records = []
    for page in range(max_pages):
        if page > 0 and page_delay:
            await sleep(page_delay)

        batch = await executor.run(
            lambda page=page: adapter.fetch_updates_page(tribunal, page, page_size),
            context=f"{adapter.name}:{tribunal}"
        )
        if not batch:
            logger.info(f"Página {page + 1} vazia, encerrando paginação")
            break

        records.extend(batch)
        logger.info(f"📄 {tribunal} página {page + 1}: {len(batch)} registros")
    return records


def _normalize_all(records: list, entry: SyncLogEntry) -> List[CanonicalCase]:
    cases = []
    now = utcnow()
    for raw in records:
        try:
            cases.append(normalize_record(raw, now=now))
        except Exception as e:
            entry.errors.append({"stage": "normalize", "error": describe_error(e)})
            logger.warning(f"⚠️ Registro descartado na normalização: {e}")
    return cases


async def run_tribunal_sync(
    tribunal: str,
    adapter: SourceAdapter,
    executor: ResilienceExecutor,
    store: DocumentStore,
    quota_tracker: QuotaTracker,
    max_pages: Optional[int] = None,
    page_size: Optional[int] = None,
    page_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> SyncLogEntry:
    """
    Executa o sync incremental de um tribunal.

    Args:
        tribunal: Sigla do tribunal (TJSP, TJMG, ...)
        adapter: Fonte com suporte a `fetch_updates_page`
        executor: Retry/circuit breaker para a fonte e para o armazenamento
        store: Armazenamento de documentos (processos e log diário)
        quota_tracker: Verificação da cota diária de escrita

    Returns:
        SyncLogEntry com o estado terminal e os contadores da execução
    """
    tribunal = tribunal.upper()
    max_pages = max_pages or settings.SYNC_MAX_PAGES
    page_size = page_size or settings.SYNC_PAGE_SIZE
    page_delay = settings.SYNC_PAGE_DELAY_SECONDS if page_delay is None else page_delay

    started_at = utcnow()
    entry = SyncLogEntry(log_date=today_key(started_at), tribunal=tribunal, started_at=started_at)

    logger.info("=" * 80)
    logger.info(f"SYNC INICIADO: tribunal={tribunal}, fonte={adapter.name}, max_pages={max_pages}")
    logger.info("=" * 80)

    try:
        quota = await asyncio.to_thread(quota_tracker.check_quota, entry.log_date)
        if quota.status == QuotaLevel.EXCEEDED:
            entry.status = SyncStatus.ERROR
            entry.errors.append({
                "stage": "quota",
                "reason": "quota_exceeded",
                "error": f"Cota diária excedida ({quota.writes_used}/{quota.writes_budget})"
            })
            return entry

        records = await _fetch_pages(tribunal, adapter, executor, max_pages, page_size, page_delay, sleep)
        entry.total_fetched = len(records)

        if not records:
            entry.status = SyncStatus.NO_DATA
            return entry

        cases = _normalize_all(records, entry)
        entry.total_processed = len(cases)

        # Escritas bloqueantes (SQLAlchemy + retry com time.sleep) rodam fora do event loop
        batch = await asyncio.to_thread(
            batch_write_if_changed, store, cases, executor=executor, write_limit=quota.writes_remaining
        )
        entry.total_written = batch.write_cost
        entry.new = batch.new
        entry.updated = batch.updated
        entry.skipped = batch.skipped
        entry.deferred = batch.deferred
        for failure in batch.failures:
            entry.errors.append({"stage": "write", "process_id": failure.process_id, "error": failure.error})

        entry.status = SyncStatus.SUCCESS

    except Exception as e:
        log_error(e, {"operation": "run_tribunal_sync", "tribunal": tribunal})
        entry.status = SyncStatus.ERROR
        entry.errors.append({"stage": "sync", "error": describe_error(e)})

    finally:
        entry.finished_at = utcnow()
        await asyncio.to_thread(record_log_entry, store, entry)
        log_sync_finished(tribunal, entry.status.value, entry.total_written, entry.skipped, len(entry.errors))

    return entry


def get_sync_log(store: DocumentStore, log_date: Optional[str] = None) -> Dict[str, Any]:
    """
    Retorna o log diário (mapa tribunal -> contadores).

    Args:
        log_date: Data no formato YYYY-MM-DD (padrão: hoje)
    """
    return read_sync_log(store, log_date or today_key())


def get_sync_stats(store: DocumentStore, log_date: Optional[str] = None) -> dict:
    """
    Retorna estatísticas agregadas do dia.

    Returns:
        Dicionário com totais de todos os tribunais
    """
    log_date = log_date or today_key()
    log = get_sync_log(store, log_date)
    tribunals = {k: v for k, v in log.items() if isinstance(v, dict)}

    def total(field: str) -> int:
        return sum(int(v.get(field, 0) or 0) for v in tribunals.values())

    return {
        "log_date": log_date,
        "tribunals": sorted(tribunals.keys()),
        "total_runs": total("runs"),
        "total_fetched": total("total_fetched"),
        "total_new": total("success"),
        "total_updated": total("updated"),
        "total_skipped": total("skipped"),
        "total_failed": total("failed"),
        "total_writes": total("success") + total("updated"),
        "tribunals_with_errors": sorted(k for k, v in tribunals.items() if v.get("last_status") == SyncStatus.ERROR.value)
    }

# ==================== WIRING PADRÃO ====================

def build_default_store() -> DocumentStore:
    from db import Base, engine
    import models  # noqa: F401  (registra a tabela no metadata)

    Base.metadata.create_all(bind=engine)
    return SqlDocumentStore()


def build_default_executor() -> ResilienceExecutor:
    return ResilienceExecutor()


def build_default_quota_tracker(store: DocumentStore) -> QuotaTracker:
    return QuotaTracker(store)


async def sync_tribunal(tribunal: str, store: Optional[DocumentStore] = None) -> SyncLogEntry:
    """Sync com as dependências padrão (usado pelo cron e pela API)."""
    from sources import build_official_adapter

    store = store or build_default_store()
    adapter = build_official_adapter()
    try:
        return await run_tribunal_sync(
            tribunal,
            adapter=adapter,
            executor=build_default_executor(),
            store=store,
            quota_tracker=build_default_quota_tracker(store)
        )
    finally:
        await adapter.aclose()
