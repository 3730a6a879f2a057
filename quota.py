"""
Controle de Cota Diária
=======================

O armazenamento cobra por escrita: 20.000 escritas / 50.000 leituras por dia.
As escritas do dia são a soma de `success + updated` de todos os tribunais no
documento de log diário (`sync_logs/{YYYY-MM-DD}`).

Classificação:
- < 80% do orçamento: HEALTHY
- 80% a < 100%: WARNING
- >= 100%: EXCEEDED
- falha de leitura: ERROR, com estimativa conservadora de 50%

O log diário é acumulado aqui também: cada execução de sync SOMA seus
contadores na entrada do tribunal, sem sobrescrever outros tribunais.
"""

from typing import Any, Dict, Optional

from config import settings
from logger import log_error, logger
from schemas import QuotaLevel, QuotaStatus, SyncLogEntry
from storage import SYNC_LOGS_COLLECTION, DocumentStore
from utils import today_key

ERROR_ESTIMATE_PERCENT = 50

COUNTER_FIELDS = ("success", "failed", "updated", "skipped", "deferred", "total_fetched", "runs")


def count_writes(log_fields: Dict[str, Any]) -> int:
    """Soma as escritas (novos + atualizados) de todos os tribunais do dia."""
    total = 0
    for entry in log_fields.values():
        if isinstance(entry, dict):
            total += int(entry.get("success", 0) or 0) + int(entry.get("updated", 0) or 0)
    return total


class QuotaTracker:
    def __init__(self, store: DocumentStore, budget: Optional[int] = None, threshold: Optional[float] = None):
        self.store = store
        self.budget = budget or settings.DAILY_WRITE_BUDGET
        self.threshold = settings.QUOTA_WARNING_THRESHOLD if threshold is None else threshold

    def classify(self, writes_used: int) -> QuotaStatus:
        ratio = writes_used / self.budget
        if ratio >= 1:
            level = QuotaLevel.EXCEEDED
        elif ratio >= self.threshold:
            level = QuotaLevel.WARNING
        else:
            level = QuotaLevel.HEALTHY

        return QuotaStatus(
            status=level,
            writes_used=writes_used,
            writes_remaining=max(0, self.budget - writes_used),
            writes_percent=writes_used * 100 // self.budget,
            writes_budget=self.budget
        )

    def check_quota(self, log_date: Optional[str] = None) -> QuotaStatus:
        """Verifica a cota do dia. Nunca levanta exceção: a verificação é consultiva."""
        log_date = log_date or today_key()
        try:
            doc = self.store.get(SYNC_LOGS_COLLECTION, log_date)
            status = self.classify(count_writes(doc.fields) if doc.exists else 0)
        except Exception as e:
            log_error(e, {"operation": "check_quota", "log_date": log_date})
            used = self.budget * ERROR_ESTIMATE_PERCENT // 100
            return QuotaStatus(
                status=QuotaLevel.ERROR,
                writes_used=used,
                writes_remaining=self.budget - used,
                writes_percent=ERROR_ESTIMATE_PERCENT,
                writes_budget=self.budget,
                error=str(e)
            )

        if status.status == QuotaLevel.EXCEEDED:
            logger.error(f"🚨 Cota de escrita excedida: {status.writes_used}/{self.budget} ({status.writes_percent}%)")
        elif status.status == QuotaLevel.WARNING:
            logger.warning(f"⚠️ Cota de escrita em {status.writes_percent}%: {status.writes_used}/{self.budget}")
        else:
            logger.info(f"✅ Cota de escrita: {status.writes_used}/{self.budget} ({status.writes_percent}%)")
        return status


def read_sync_log(store: DocumentStore, log_date: str) -> Dict[str, Any]:
    doc = store.get(SYNC_LOGS_COLLECTION, log_date)
    return doc.fields if doc.exists else {}


def record_log_entry(store: DocumentStore, entry: SyncLogEntry) -> bool:
    """
    Soma os contadores da execução na entrada do tribunal no log do dia.

    Returns:
        True se o log foi gravado; falhas são logadas e não propagadas.
    """
    try:
        current = read_sync_log(store, entry.log_date).get(entry.tribunal) or {}
        increments = {
            "success": entry.new,
            "failed": len(entry.errors),
            "updated": entry.updated,
            "skipped": entry.skipped,
            "deferred": entry.deferred,
            "total_fetched": entry.total_fetched,
            "runs": 1,
        }
        merged = dict(current)
        for field in COUNTER_FIELDS:
            merged[field] = int(current.get(field, 0) or 0) + increments[field]
        merged["last_run"] = (entry.finished_at or entry.started_at).isoformat()
        merged["last_status"] = entry.status.value

        store.set_merge(SYNC_LOGS_COLLECTION, entry.log_date, {entry.tribunal: merged})
        logger.info(f"📝 Log de sync gravado: {entry.log_date}/{entry.tribunal} ({entry.status.value})")
        return True
    except Exception as e:
        log_error(e, {"operation": "record_log_entry", "tribunal": entry.tribunal, "log_date": entry.log_date})
        return False
