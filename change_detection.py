"""
Escrita com Detecção de Mudanças
================================

Cada escrita no armazenamento custa cota. Antes de gravar um processo:

1. Calcula o hash SHA-256 dos campos estáveis (número, última atualização,
   último movimento, status e partes), com chaves ordenadas
2. Busca o documento existente pelo processId
3. Hash igual ao armazenado: pula (custo 0). Caso contrário: merge-write (custo 1)

Campos de controle (sync_status, synced_at) ficam fora do hash, então duas
execuções com o mesmo conteúdo não geram escrita.
"""

import hashlib
import json
from typing import Iterable, Optional, Tuple

from errors import describe_error
from logger import log_error, log_write_decision, logger
from resilience import ResilienceExecutor
from schemas import BatchWriteResult, CanonicalCase, WriteFailure, WriteResult
from storage import CASES_COLLECTION, DocumentStore
from utils import utcnow

HASHED_FIELDS = ("case_number", "last_update_date", "last_movement", "status", "parties")


def compute_content_hash(case: CanonicalCase) -> str:
    data = case.model_dump(mode="json", include=set(HASHED_FIELDS))
    payload = json.dumps(data, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _storage_call(executor: Optional[ResilienceExecutor], fn):
    if executor is None:
        return fn()
    return executor.run_sync(fn, context="storage")


def _detect_change(store: DocumentStore, case: CanonicalCase, executor: Optional[ResilienceExecutor]) -> Tuple[str, Optional[str]]:
    """Retorna (hash, motivo); motivo None quando o conteúdo não mudou."""
    content_hash = compute_content_hash(case)
    existing = _storage_call(executor, lambda: store.get(CASES_COLLECTION, case.process_id))

    if not existing.exists:
        return content_hash, "new"
    if existing.fields.get("content_hash") == content_hash:
        return content_hash, None
    return content_hash, "updated"


def _commit(store: DocumentStore, case: CanonicalCase, content_hash: str, executor: Optional[ResilienceExecutor]):
    document = case.model_dump(mode="json")
    document["content_hash"] = content_hash
    document["sync_status"] = "synced"
    document["synced_at"] = utcnow().isoformat()
    _storage_call(executor, lambda: store.set_merge(CASES_COLLECTION, case.process_id, document))


def write_if_changed(store: DocumentStore, case: CanonicalCase, executor: Optional[ResilienceExecutor] = None) -> WriteResult:
    """Grava o processo apenas se o hash mudou. Erros de armazenamento são propagados."""
    content_hash, reason = _detect_change(store, case, executor)

    if reason is None:
        log_write_decision(case.process_id, False, "no_changes")
        return WriteResult(written=False, cost=0, reason="no_changes")

    _commit(store, case, content_hash, executor)
    log_write_decision(case.process_id, True, reason)
    return WriteResult(written=True, cost=1, reason=reason)


def batch_write_if_changed(
    store: DocumentStore,
    cases: Iterable[CanonicalCase],
    executor: Optional[ResilienceExecutor] = None,
    write_limit: Optional[int] = None
) -> BatchWriteResult:
    """
    Processa cada caso de forma independente.

    Args:
        write_limit: Escritas ainda disponíveis na cota do dia. Casos alterados
            além desse limite são contados como `deferred` e não são gravados.

    Returns:
        BatchWriteResult com custo total, novos, atualizados, pulados, adiados e falhas
    """
    result = BatchWriteResult()

    for case in cases:
        result.total_processed += 1
        try:
            content_hash, reason = _detect_change(store, case, executor)

            if reason is None:
                result.skipped += 1
                log_write_decision(case.process_id, False, "no_changes")
                continue

            if write_limit is not None and result.write_cost >= write_limit:
                result.deferred += 1
                log_write_decision(case.process_id, False, "deferred")
                continue

            _commit(store, case, content_hash, executor)
            log_write_decision(case.process_id, True, reason)
            result.write_cost += 1
            if reason == "new":
                result.new += 1
            else:
                result.updated += 1

        except Exception as e:
            log_error(e, {"operation": "batch_write_if_changed", "process_id": case.process_id})
            result.failures.append(WriteFailure(process_id=case.process_id, error=describe_error(e)))

    logger.info(
        f"💾 Escrita em lote: {result.write_cost} escritas, {result.skipped} sem mudanças, "
        f"{result.deferred} adiadas, {len(result.failures)} falhas"
    )
    return result
