"""
Cache da Busca Consolidada
==========================

Guarda os casos únicos de cada consulta por um TTL (padrão 7 dias) para evitar
repetir o fan-out para todas as fontes, e mantém o histórico recente de buscas.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

from config import settings
from logger import logger
from schemas import CanonicalCase, SearchHistoryItem
from utils import normalize_string


class SearchCache:
    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        max_entries: Optional[int] = None
    ):
        self.ttl_seconds = settings.SEARCH_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_entries = max_entries or settings.SEARCH_CACHE_MAX_ENTRIES
        self.clock = clock
        self._entries: Dict[str, Tuple[float, List[CanonicalCase]]] = {}

    @staticmethod
    def make_key(query: str, source: str = "all") -> str:
        normalized = (normalize_string(query) or "").replace(" ", "_")
        return f"{source}_{normalized}"

    def get(self, query: str, source: str = "all") -> Optional[List[CanonicalCase]]:
        key = self.make_key(query, source)
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, cases = entry
        age = self.clock() - stored_at
        if age > self.ttl_seconds:
            logger.info(f"⏰ Cache expirado para \"{query}\"")
            del self._entries[key]
            return None

        logger.info(f"💾 Cache: \"{query}\" ({int(age // 3600)}h, {len(cases)} casos)")
        return [c.model_copy(deep=True) for c in cases]

    def put(self, query: str, cases: List[CanonicalCase], source: str = "all"):
        key = self.make_key(query, source)
        self._entries.pop(key, None)
        self._entries[key] = (
            self.clock(),
            [c.model_copy(deep=True) for c in cases]
        )
        self._prune()

    def _prune(self):
        """Remove entradas expiradas e, acima do limite, as mais antigas."""
        now = self.clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]

        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries.clear()


class SearchHistory:
    def __init__(self, max_size: Optional[int] = None):
        self._items: Deque[SearchHistoryItem] = deque(maxlen=max_size or settings.SEARCH_HISTORY_SIZE)

    def add(self, item: SearchHistoryItem):
        self._items.append(item)

    def recent(self, limit: int = 10) -> List[SearchHistoryItem]:
        if limit <= 0:
            return []
        return list(self._items)[-limit:]
