"""
DataJud Adapter - API Pública Oficial do CNJ
=============================================

Fonte oficial (canônica) de dados processuais. Usada na busca consolidada e
como única fonte do sync incremental por tribunal.

Endpoint: {DATAJUD_BASE_URL}/api_publica_<tribunal>/_search (Elasticsearch)
Autenticação: header `Authorization: APIKey <DATAJUD_API_KEY>`
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from adapter_base import SourceAdapter, raise_for_source_status
from config import settings
from errors import PermanentSourceError, TransientSourceError
from logger import logger
from schemas import UNKNOWN_TRIBUNAL, DataJudRecord, SearchOptions
from tribunals import datajud_alias, resolve_tribunal
from utils import only_digits, utcnow

SOURCE_FIELDS = [
    "numeroProcesso",
    "classe",
    "assuntos",
    "dataAjuizamento",
    "dataHoraUltimaAtualizacao",
    "partes",
    "orgaoJulgador",
    "movimentos",
    "valorCausa",
    "grau",
]


class DataJudAdapter(SourceAdapter):
    """Cliente assíncrono da API pública do DataJud."""

    name = "datajud"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        lookback_hours: Optional[int] = None,
        page_delay: Optional[float] = None,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key if api_key is not None else settings.DATAJUD_API_KEY
        self.base_url = (base_url or settings.DATAJUD_BASE_URL).rstrip("/")
        self.lookback_hours = lookback_hours or settings.SYNC_LOOKBACK_HOURS
        self.page_delay = settings.SYNC_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.timeout = timeout or settings.CALL_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"APIKey {self.api_key}",
            "Content-Type": "application/json",
            "User-Agent": "JudSync/1.0",
        }

    async def _post(self, tribunal: str, body: Dict[str, Any]) -> Dict[str, Any]:
        alias = datajud_alias(tribunal)
        if not alias:
            raise PermanentSourceError(f"Tribunal desconhecido: {tribunal}", source=self.name)

        url = f"{self.base_url}/api_publica_{alias}/_search"
        try:
            response = await self.client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise TransientSourceError(f"DataJud {tribunal}: timeout", source=self.name) from e
        except httpx.TransportError as e:
            raise TransientSourceError(f"DataJud {tribunal}: {e}", source=self.name) from e

        raise_for_source_status(response, self.name, f"DataJud {tribunal}")
        try:
            return response.json()
        except ValueError as e:
            raise TransientSourceError(f"DataJud {tribunal}: resposta inválida", source=self.name) from e

    def _parse_hits(self, data: Dict[str, Any]) -> List[DataJudRecord]:
        records = []
        for hit in (data.get("hits") or {}).get("hits") or []:
            try:
                records.append(DataJudRecord.model_validate(hit.get("_source") or {}))
            except ValidationError as e:
                logger.warning(f"⚠️ DataJud: registro ignorado ({e.error_count()} erros de validação)")
        return records

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[DataJudRecord]:
        """
        Busca por nome de parte ou por número do processo.

        Números com 20 dígitos viram consulta exata no tribunal do próprio número.
        """
        options = options or SearchOptions(
            max_pages=settings.SEARCH_MAX_PAGES,
            page_size=settings.SEARCH_PAGE_SIZE
        )
        query = (query or "").strip()
        if len(query) < 3:
            raise PermanentSourceError("Nome deve ter pelo menos 3 caracteres.", source=self.name)

        tribunals = options.tribunals or list(settings.DEFAULT_SEARCH_TRIBUNALS)
        digits = only_digits(query)

        if len(digits) == 20:
            tribunal = resolve_tribunal(digits)
            if tribunal != UNKNOWN_TRIBUNAL:
                tribunals = [tribunal]
            body = {"query": {"match": {"numeroProcesso": digits}}, "_source": SOURCE_FIELDS}
            results = []
            for tribunal in tribunals:
                results.extend(self._parse_hits(await self._post(tribunal, body)))
            return results

        logger.info(f"📋 DataJud: buscando \"{query}\" em {', '.join(tribunals)}")
        results: List[DataJudRecord] = []
        for tribunal in tribunals:
            for page in range(options.max_pages):
                body = {
                    "query": {"match_phrase": {"partes.nome": query}},
                    "size": options.page_size,
                    "from": page * options.page_size,
                    "_source": SOURCE_FIELDS,
                }
                page_results = self._parse_hits(await self._post(tribunal, body))
                if not page_results:
                    break
                results.extend(page_results)
                if len(page_results) < options.page_size:
                    break
                # Delay respeitoso entre páginas
                await asyncio.sleep(self.page_delay)

        logger.info(f"✅ DataJud: {len(results)} processos encontrados")
        return results

    async def fetch_updates_page(self, tribunal: str, page: int, page_size: int) -> List[DataJudRecord]:
        """Processos com `dataHoraUltimaAtualizacao` nas últimas `lookback_hours` horas."""
        now = utcnow()
        since = now - timedelta(hours=self.lookback_hours)
        body = {
            "query": {
                "bool": {
                    "must": [
                        {
                            "range": {
                                "dataHoraUltimaAtualizacao": {
                                    "gte": since.isoformat(),
                                    "lte": now.isoformat()
                                }
                            }
                        }
                    ]
                }
            },
            "size": page_size,
            "from": page * page_size,
            "sort": [{"dataHoraUltimaAtualizacao": {"order": "asc"}}],
            "_source": SOURCE_FIELDS,
        }
        return self._parse_hits(await self._post(tribunal, body))
