"""
Busca Judicial Consolidada
==========================

Consulta todas as fontes ao mesmo tempo e consolida o resultado:

1. Uma task por fonte, cada uma protegida pelo ResilienceExecutor, por um prazo
   próprio e por uma barreira de isolamento (erro vira SourceResult.error)
2. Depois que TODAS as tasks terminam: normalização e agrupamento por processId
3. Duplicatas são mescladas; divergências de classe, assunto e data de
   ajuizamento são reportadas como conflitos

A busca nunca levanta exceção: mesmo com todas as fontes fora do ar o retorno é
um ConsolidatedSearchResult bem formado.
"""

import asyncio
import time
import uuid
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from adapter_base import SourceAdapter
from config import settings
from errors import describe_error
from logger import log_source_result, logger
from normalizer import normalize_record
from resilience import ResilienceExecutor
from schemas import (
    CanonicalCase,
    ConsolidatedBlock,
    ConsolidatedSearchResult,
    ConsolidationResult,
    Conflict,
    Parties,
    SearchHistoryItem,
    SearchMetadata,
    SearchOptions,
    SourceResult,
)
from search_cache import SearchCache, SearchHistory
from utils import utcnow

FILING_DATE_TOLERANCE = timedelta(days=1)

# ==================== CONSOLIDAÇÃO (sem I/O) ====================

def find_conflicts(existing: CanonicalCase, incoming: CanonicalCase) -> List[Conflict]:
    """Compara classe, assunto e data de ajuizamento de dois registros do mesmo processo."""
    conflicts = []

    def add(field, value_a, value_b):
        conflicts.append(Conflict(
            process_id=existing.process_id,
            field=field,
            source_a=existing.source_system,
            value_a=value_a,
            source_b=incoming.source_system,
            value_b=value_b
        ))

    if existing.classification.name != incoming.classification.name:
        add("classification", existing.classification.name, incoming.classification.name)

    if existing.subject.name != incoming.subject.name:
        add("subject", existing.subject.name, incoming.subject.name)

    date_a, date_b = existing.filing_date, incoming.filing_date
    if date_a is not None and date_b is not None and abs(date_a - date_b) > FILING_DATE_TOLERANCE:
        add("filing_date", date_a, date_b)

    return conflicts


def merge_parties(parties_a: Parties, parties_b: Parties) -> Parties:
    """União por nome (case-insensitive) em cada polo; nada é sobrescrito."""
    merged = parties_a.model_copy(deep=True)
    for role in ("claimant", "respondent", "intervenor", "other"):
        current = getattr(merged, role)
        known = {p.name.casefold() for p in current}
        for party in getattr(parties_b, role):
            if party.name.casefold() not in known:
                current.append(party.model_copy())
                known.add(party.name.casefold())
    return merged


def merge_case_data(existing: CanonicalCase, incoming: CanonicalCase, canonical_source: str) -> CanonicalCase:
    """
    Mescla um registro duplicado no registro de trabalho.

    Classe e assunto: a fonte oficial vence; se nenhuma das duas for oficial,
    fica o primeiro visto. Campos vazios do registro de trabalho são completados.
    """
    merged = existing.model_copy(deep=True)

    if incoming.source_system == canonical_source and existing.source_system != canonical_source:
        merged.classification = incoming.classification.model_copy()
        merged.subject = incoming.subject.model_copy()
        merged.source_system = incoming.source_system

    merged.parties = merge_parties(existing.parties, incoming.parties)

    for field in ("filing_date", "last_update_date", "judge", "last_movement"):
        if getattr(merged, field) is None and getattr(incoming, field) is not None:
            setattr(merged, field, getattr(incoming, field))
    if not merged.claim_value and incoming.claim_value:
        merged.claim_value = incoming.claim_value

    for source in incoming.sources or [incoming.source_system]:
        if source not in merged.sources:
            merged.sources.append(source)

    return merged


def consolidate_cases(cases: Iterable[CanonicalCase], canonical_source: Optional[str] = None) -> ConsolidationResult:
    """Agrupa por processId. A ordem de entrada define o "primeiro visto"."""
    canonical_source = canonical_source or settings.CANONICAL_SOURCE
    working = {}
    conflicts: List[Conflict] = []
    duplicate_count = 0

    for case in cases:
        key = case.process_id
        if key not in working:
            working[key] = case.model_copy(deep=True)
            if not working[key].sources:
                working[key].sources = [case.source_system]
            continue

        duplicate_count += 1
        existing = working[key]
        conflicts.extend(find_conflicts(existing, case))
        working[key] = merge_case_data(existing, case, canonical_source)

    return ConsolidationResult(
        unique_cases=list(working.values()),
        duplicate_count=duplicate_count,
        conflicts=conflicts
    )

# ==================== BUSCA CONSOLIDADA ====================

class ConsolidatedSearch:
    """
    Busca por nome em todas as fontes em paralelo.

    Todas as dependências são injetadas: adapters, executor de resiliência,
    cache e histórico.
    """

    def __init__(
        self,
        adapters: List[SourceAdapter],
        executor: Optional[ResilienceExecutor] = None,
        canonical_source: Optional[str] = None,
        source_deadline: Optional[float] = None,
        cache: Optional[SearchCache] = None,
        history: Optional[SearchHistory] = None
    ):
        self.adapters = list(adapters)
        self.executor = executor or ResilienceExecutor()
        self.canonical_source = canonical_source or settings.CANONICAL_SOURCE
        self.source_deadline = settings.SEARCH_SOURCE_DEADLINE_SECONDS if source_deadline is None else source_deadline
        self.cache = cache
        self.history = history or SearchHistory()

    def default_options(self) -> SearchOptions:
        return SearchOptions(
            max_pages=settings.SEARCH_MAX_PAGES,
            page_size=settings.SEARCH_PAGE_SIZE,
            tribunals=list(settings.DEFAULT_SEARCH_TRIBUNALS)
        )

    async def _run_source(self, adapter: SourceAdapter, query: str, options: SearchOptions) -> Tuple[list, Optional[str], int]:
        """Barreira de isolamento: nunca levanta; devolve (registros brutos, erro, ms)."""
        started = time.monotonic()
        try:
            records = await asyncio.wait_for(
                self.executor.run(lambda: adapter.search(query, options), context=adapter.name),
                timeout=self.source_deadline
            )
            return list(records or []), None, int((time.monotonic() - started) * 1000)
        except asyncio.TimeoutError:
            error = f"TimeoutError: fonte excedeu o prazo de {self.source_deadline:.0f}s"
        except Exception as e:
            error = describe_error(e)
        return [], error, int((time.monotonic() - started) * 1000)

    def _normalize_source(self, name: str, raw_records: list) -> SourceResult:
        normalized = []
        rejected = 0
        now = utcnow()
        for raw in raw_records:
            try:
                normalized.append(normalize_record(raw, now=now))
            except Exception as e:
                rejected += 1
                logger.warning(f"⚠️ {name}: registro descartado na normalização: {e}")
        return SourceResult(count=len(normalized), records=normalized, rejected=rejected)

    def _from_cache(self, search_id: str, query: str, cached: List[CanonicalCase], started: float) -> ConsolidatedSearchResult:
        return ConsolidatedSearchResult(
            search_id=search_id,
            query=query,
            timestamp=utcnow(),
            sources={"cache": SourceResult(count=len(cached), records=cached)},
            consolidated=ConsolidatedBlock(
                total_cases=len(cached),
                unique_cases=cached,
                duplicates_found=0,
                conflicts=[]
            ),
            metadata=SearchMetadata(
                execution_time_ms=int((time.monotonic() - started) * 1000),
                sources_queried=1,
                sources_successful=1,
                execution_mode="CACHE",
                from_cache=True
            )
        )

    async def search_by_name(self, name: str, options: Optional[SearchOptions] = None, use_cache: bool = True) -> ConsolidatedSearchResult:
        """
        MÉTODO PRINCIPAL: busca em todas as fontes simultaneamente.

        Args:
            name: Nome da parte (ou número do processo)
            options: Paginação/tribunais repassados aos adapters
            use_cache: Consultar o cache antes do fan-out

        Returns:
            ConsolidatedSearchResult com o resultado de cada fonte e os casos únicos
        """
        search_id = f"consolidated_{uuid.uuid4().hex[:12]}"
        started = time.monotonic()
        query = (name or "").strip()
        options = options or self.default_options()

        logger.info("=" * 80)
        logger.info(f"🔍 BUSCA JUDICIAL CONSOLIDADA: \"{query}\"")
        logger.info("=" * 80)

        if use_cache and self.cache is not None:
            cached = self.cache.get(query)
            if cached:
                result = self._from_cache(search_id, query, cached, started)
                self._add_to_history(result)
                return result

        # Fan-out: uma task por fonte; nada é mesclado antes de todas terminarem
        outcomes = await asyncio.gather(
            *(self._run_source(adapter, query, options) for adapter in self.adapters)
        )

        sources = {}
        ordered_cases: List[CanonicalCase] = []
        sources_successful = 0
        for adapter, (raw_records, error, elapsed_ms) in zip(self.adapters, outcomes):
            if error:
                source_result = SourceResult(error=error, elapsed_ms=elapsed_ms)
            else:
                source_result = self._normalize_source(adapter.name, raw_records)
                source_result.elapsed_ms = elapsed_ms
                sources_successful += 1
                ordered_cases.extend(source_result.records)
            sources[adapter.name] = source_result
            log_source_result(adapter.name, source_result.count, error, elapsed_ms)

        consolidation = consolidate_cases(ordered_cases, self.canonical_source)

        result = ConsolidatedSearchResult(
            search_id=search_id,
            query=query,
            timestamp=utcnow(),
            sources=sources,
            consolidated=ConsolidatedBlock(
                total_cases=len(ordered_cases),
                unique_cases=consolidation.unique_cases,
                duplicates_found=consolidation.duplicate_count,
                conflicts=consolidation.conflicts
            ),
            metadata=SearchMetadata(
                execution_time_ms=int((time.monotonic() - started) * 1000),
                sources_queried=len(self.adapters),
                sources_successful=sources_successful,
                execution_mode="PARALLEL"
            )
        )

        if self.cache is not None and consolidation.unique_cases:
            self.cache.put(query, consolidation.unique_cases)

        self._add_to_history(result)
        self._log_summary(result)
        return result

    def _add_to_history(self, result: ConsolidatedSearchResult):
        self.history.add(SearchHistoryItem(
            search_id=result.search_id,
            query=result.query,
            timestamp=result.timestamp,
            total_found=len(result.consolidated.unique_cases),
            execution_time_ms=result.metadata.execution_time_ms,
            from_cache=result.metadata.from_cache
        ))

    def get_search_history(self, limit: int = 10) -> List[SearchHistoryItem]:
        return self.history.recent(limit)

    def _log_summary(self, result: ConsolidatedSearchResult):
        consolidated = result.consolidated
        logger.info(f"📊 RESULTADO CONSOLIDADO ({result.metadata.execution_time_ms}ms)")
        for source, data in result.sources.items():
            status = "❌" if data.error else "✅"
            logger.info(f"  {status} {source}: {data.count} casos" + (f" ({data.error})" if data.error else ""))
        logger.info(f"  Total de todas as fontes: {consolidated.total_cases}")
        logger.info(f"  Casos únicos: {len(consolidated.unique_cases)}")
        logger.info(f"  Duplicatas mescladas: {consolidated.duplicates_found}")
        logger.info(f"  Conflitos de dados: {len(consolidated.conflicts)}")
