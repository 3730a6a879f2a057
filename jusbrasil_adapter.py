"""
JusBrasil Adapter - Scraping HTML
=================================

Fonte complementar. Extrai apenas o que a página de resultados expõe de forma
estável: número CNJ, classe e assunto de cada resultado. A parte buscada entra
como parte do processo (polo desconhecido).
"""

import re
from typing import List, Optional

import httpx

from adapter_base import SourceAdapter, raise_for_source_status
from config import settings
from errors import PermanentSourceError, TransientSourceError
from logger import logger
from schemas import ScrapedParty, ScrapedRecord, SearchOptions

CNJ_PATTERN = re.compile(r"(\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4})")
CLASSE_PATTERN = re.compile(r"Classe:?\s*(?:<[^>]*>\s*)*([^<\n]+)", re.IGNORECASE)
ASSUNTO_PATTERN = re.compile(r"Assunto:?\s*(?:<[^>]*>\s*)*([^<\n]+)", re.IGNORECASE)
DATA_PATTERN = re.compile(r"(\d{2}/\d{2}/\d{4})")

# Tamanho do trecho analisado após cada número encontrado
SNIPPET_SIZE = 600


class JusBrasilAdapter(SourceAdapter):
    name = "jusbrasil"

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or settings.JUSBRASIL_BASE_URL).rstrip("/")
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.CALL_TIMEOUT_SECONDS,
                follow_redirects=True,
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
                    "Accept-Language": "pt-BR,pt;q=0.9",
                }
            )
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def parse_results(self, html: str, query: str) -> List[ScrapedRecord]:
        records = {}
        for match in CNJ_PATTERN.finditer(html):
            numero = match.group(1)
            if numero in records:
                continue
            snippet = html[match.end():match.end() + SNIPPET_SIZE]
            classe = CLASSE_PATTERN.search(snippet)
            assunto = ASSUNTO_PATTERN.search(snippet)
            data = DATA_PATTERN.search(snippet)
            records[numero] = ScrapedRecord(
                source_system=self.name,
                numero=numero,
                classe=classe.group(1).strip() if classe else None,
                assunto=assunto.group(1).strip() if assunto else None,
                data_distribuicao=data.group(1) if data else None,
                partes=[ScrapedParty(nome=query)],
                url=f"{self.base_url}/processos/{numero}"
            )
        return list(records.values())

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[ScrapedRecord]:
        options = options or SearchOptions(max_pages=1)
        query = (query or "").strip()
        if len(query) < 3:
            raise PermanentSourceError("Nome deve ter pelo menos 3 caracteres.", source=self.name)

        results: List[ScrapedRecord] = []
        seen = set()
        for page in range(1, options.max_pages + 1):
            try:
                response = await self.client.get(
                    f"{self.base_url}/consulta-processual/busca",
                    params={"q": query, "p": page}
                )
            except httpx.TimeoutException as e:
                raise TransientSourceError("JusBrasil: timeout", source=self.name) from e
            except httpx.TransportError as e:
                raise TransientSourceError(f"JusBrasil: {e}", source=self.name) from e

            raise_for_source_status(response, self.name, "JusBrasil")
            page_results = [r for r in self.parse_results(response.text, query) if r.numero not in seen]
            if not page_results:
                break
            seen.update(r.numero for r in page_results)
            results.extend(page_results)

        logger.info(f"✅ JusBrasil: {len(results)} processos encontrados")
        return results
