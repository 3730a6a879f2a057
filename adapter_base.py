from typing import List, Optional

import httpx

from errors import PermanentSourceError, RateLimitedError, SourceError, TransientSourceError
from schemas import RawRecord, SearchOptions

class SourceAdapter:
    """Contrato base para adaptadores de consulta a fontes judiciais (API, scraping, navegador).

    `search` devolve [] quando não há resultados e levanta um erro classificado
    (TransientSourceError, RateLimitedError, PermanentSourceError) em falhas de
    conexão/protocolo.
    """
    name: str = "base"

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[RawRecord]:
        raise NotImplementedError

    async def fetch_updates_page(self, tribunal: str, page: int, page_size: int) -> List[RawRecord]:
        """Página de processos atualizados recentemente (apenas fontes que suportam sync incremental)."""
        raise NotImplementedError(f"Fonte {self.name} não suporta sync incremental")

    async def aclose(self):
        """Libera recursos (clientes HTTP, navegador)."""
        return None


def raise_for_source_status(response: httpx.Response, source: str, label: str):
    """Converte o status HTTP em erro classificado (429, 4xx permanente, 5xx transitório)."""
    status = response.status_code
    if status < 400:
        return
    detail = f"{label}: HTTP {status}"
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitedError(
            detail,
            source=source,
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
        )
    if status in (400, 401, 403, 404):
        raise PermanentSourceError(detail, source=source, status_code=status)
    if status >= 500:
        raise TransientSourceError(detail, source=source, status_code=status)
    raise SourceError(detail, source=source, status_code=status)
